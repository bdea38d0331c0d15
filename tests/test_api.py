from datetime import date, datetime, time

import pytest

from pickleplus.models import AuditLog


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_health_db(client):
    response = await client.get("/health/db")

    assert response.json() == {"status": "ok", "message": "Database connection is working"}


async def test_create_and_list_facilities(client):
    created = await client.post(
        "/api/facilities",
        json={"name": "Pickle+ Tampines", "address": "1 Tampines Walk", "access_code": "tc002-sg"},
    )
    listed = await client.get("/api/facilities")

    assert created.status_code == 201
    assert created.json()["access_code"] == "TC002-SG"
    assert [f["name"] for f in listed.json()] == ["Pickle+ Tampines"]


async def test_duplicate_facility_conflicts(client, facility):
    response = await client.post(
        "/api/facilities",
        json={"name": "Copy", "address": "Somewhere", "access_code": "TC001-SG"},
    )

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "ALREADY_EXISTS"


async def test_invalid_access_code_is_unprocessable(client):
    response = await client.post(
        "/api/facilities", json={"name": "Bad", "address": "Somewhere", "access_code": "ABC"}
    )

    assert response.status_code == 422


async def test_checkin_by_code_and_id(client, facility):
    by_code = await client.post("/api/facility-checkin", json={"code": " tc001-sg "})
    by_id = await client.post("/api/facility-checkin", json={"facility_id": facility.id})

    assert by_code.status_code == 200
    assert by_code.json()["id"] == facility.id
    assert by_id.json()["name"] == "Pickle+ Kallang"


async def test_checkin_unknown_code(client, facility):
    response = await client.post("/api/facility-checkin", json={"code": "TC999-XX"})

    assert response.status_code == 404
    assert response.json()["detail"] == {
        "error": "NOT_FOUND",
        "message": "Facility not found",
        "retryable": False,
    }


async def test_checkin_needs_exactly_one_selector(client, facility):
    assert (await client.post("/api/facility-checkin", json={})).status_code == 422
    both = await client.post("/api/facility-checkin", json={"code": "TC001-SG", "facility_id": 1})
    assert both.status_code == 422


async def test_weekly_schedule(client, facility, make_class):
    await make_class(current_enrollment=4)

    response = await client.get(
        f"/api/calendar/weekly-schedule/{facility.id}", params={"week": "2025-03-14"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["week_start"] == "2025-03-09"
    assert body["previous_week"] == "2025-03-02"
    assert body["next_week"] == "2025-03-16"
    assert len(body["days"]) == 7
    [scheduled] = body["days"]["2025-03-12"]
    assert scheduled["capacity"] == {"min": 4, "max": 6, "current": 4}
    assert scheduled["availability"] == {
        "kind": "LOW_AVAILABILITY",
        "needed_count": None,
        "spots_left": 2,
    }
    assert scheduled["price"] == 25.0


async def test_weekly_schedule_unknown_facility(client):
    response = await client.get("/api/calendar/weekly-schedule/404", params={"week": "2025-03-12"})

    assert response.status_code == 404


async def test_daily_classes(client, facility, make_class):
    await make_class(start_time=time(19, 0))
    await make_class(start_time=time(9, 0))

    response = await client.get(f"/api/calendar/classes/{facility.id}", params={"date": "2025-03-12"})

    assert [c["start_time"] for c in response.json()] == ["09:00:00", "19:00:00"]


async def test_create_class(client, facility):
    response = await client.post(
        "/api/calendar/classes",
        json={
            "facility_id": facility.id,
            "name": "Dinking Clinic",
            "class_date": "2025-03-13",
            "start_time": "18:30:00",
            "end_time": "20:00:00",
            "skill_level": "intermediate",
            "min_participants": 4,
            "max_participants": 6,
            "price": "30.00",
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["date"] == "2025-03-13"
    assert body["availability"]["kind"] == "BELOW_MINIMUM"
    assert body["availability"]["needed_count"] == 4


async def test_create_class_validates_times(client, facility):
    response = await client.post(
        "/api/calendar/classes",
        json={
            "facility_id": facility.id,
            "name": "Backwards",
            "class_date": "2025-03-13",
            "start_time": "20:00:00",
            "end_time": "18:00:00",
        },
    )

    assert response.status_code == 422


async def test_create_class_for_unknown_facility(client):
    response = await client.post(
        "/api/calendar/classes",
        json={
            "facility_id": 404,
            "name": "Nowhere",
            "class_date": "2025-03-13",
            "start_time": "18:00:00",
            "end_time": "19:00:00",
        },
    )

    assert response.status_code == 404


async def test_enroll_waitlist_and_cancel_flow(client, make_class):
    offering = await make_class(min_participants=1, max_participants=1)
    url = f"/api/calendar/classes/{offering.id}/enroll"

    first = await client.post(url, json={"user_id": 1})
    second = await client.post(url, json={"user_id": 2})
    duplicate = await client.post(url, json={"user_id": 2})

    assert first.json()["outcome"] == "ENROLLED"
    assert second.json()["outcome"] == "WAITLISTED"
    assert second.json()["record"]["position"] == 1
    assert second.json()["class_offering"]["availability"]["kind"] == "FULL"
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["error"] == "ALREADY_ACTIVE"
    assert duplicate.json()["detail"]["message"] == "User is already waitlisted for this class"

    cancelled = await client.request("DELETE", url, json={"user_id": 1})

    assert cancelled.status_code == 200
    body = cancelled.json()
    assert body["record"]["state"] == "CANCELLED"
    assert body["promoted"]["user_id"] == 2
    assert body["class_offering"]["capacity"]["current"] == 1
    assert body["class_offering"]["waitlist_count"] == 0


async def test_cancel_without_enrollment_is_not_found(client, make_class):
    offering = await make_class()

    response = await client.request(
        "DELETE", f"/api/calendar/classes/{offering.id}/enroll", json={"user_id": 5}
    )

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "NOT_ENROLLED"


async def test_enroll_unknown_class(client):
    response = await client.post("/api/calendar/classes/9999/enroll", json={"user_id": 1})

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "CLASS_NOT_FOUND"


async def test_class_details_with_user_enrollment(client, make_class):
    offering = await make_class()
    await client.post(f"/api/calendar/classes/{offering.id}/enroll", json={"user_id": 3})

    with_user = await client.get(f"/api/calendar/classes/{offering.id}/details", params={"user_id": 3})
    other_user = await client.get(f"/api/calendar/classes/{offering.id}/details", params={"user_id": 4})

    assert with_user.json()["user_enrollment"]["state"] == "ENROLLED"
    assert other_user.json()["user_enrollment"] is None
    assert other_user.json()["class_offering"]["capacity"]["current"] == 1


async def test_cancel_class_then_enroll_conflicts(client, make_class):
    offering = await make_class()
    await client.post(f"/api/calendar/classes/{offering.id}/enroll", json={"user_id": 1})

    cancelled = await client.post(
        f"/api/calendar/classes/{offering.id}/cancel", json={"reason": "Court resurfacing"}
    )
    enroll = await client.post(f"/api/calendar/classes/{offering.id}/enroll", json={"user_id": 2})

    assert cancelled.status_code == 200
    assert cancelled.json()["affected_user_ids"] == [1]
    assert cancelled.json()["class_offering"]["availability"]["kind"] == "CANCELLED"
    assert enroll.status_code == 409
    assert enroll.json()["detail"]["error"] == "CLASS_CANCELLED"


async def test_my_classes(client, make_class):
    past = await make_class(class_date=date(2000, 1, 5))
    future = await make_class(class_date=date(2100, 1, 5))
    for offering in (past, future):
        await client.post(f"/api/calendar/classes/{offering.id}/enroll", json={"user_id": 9})

    both = await client.get("/api/calendar/my-classes", params={"user_id": 9})
    upcoming = await client.get("/api/calendar/my-classes", params={"user_id": 9, "upcoming": "true"})

    assert [e["class_offering"]["id"] for e in both.json()["upcoming"]] == [future.id]
    assert [e["class_offering"]["id"] for e in both.json()["past"]] == [past.id]
    assert upcoming.json()["past"] == []


async def test_audit_logs(client, make_class):
    offering = await make_class()
    await client.post(f"/api/calendar/classes/{offering.id}/enroll", json={"user_id": 1})
    await client.request("DELETE", f"/api/calendar/classes/{offering.id}/enroll", json={"user_id": 1})

    response = await client.get("/api/audit/logs", params={"entity_id": offering.id})
    unenrolls = await client.get("/api/audit/logs", params={"action_type": "UNENROLL"})

    body = response.json()
    assert body["total"] == 2
    assert {log["action_type"] for log in body["logs"]} == {"ENROLL", "UNENROLL"}
    assert unenrolls.json()["total"] == 1
    assert unenrolls.json()["logs"][0]["user_id"] == 1


@pytest.mark.parametrize(
    "date_to, expected",
    [("2025-03-12T15:00:00", 1), ("2025-03-12T09:00:00", 0), ("2025-03-12T00:00:00", 1), ("2025-03-13T00:00:00", 2)],
)
async def test_audit_date_to_bound(client, db, date_to, expected):
    for day in (12, 13):
        db.add(
            AuditLog(
                timestamp=datetime(2025, 3, day, 10, 0),
                user_type="system",
                action_type="AUTO_CANCEL",
                entity_type="class",
                description=f"Class on March {day}",
            )
        )
    await db.commit()

    response = await client.get("/api/audit/logs", params={"date_to": date_to})

    assert response.json()["total"] == expected


async def test_enrolled_user_cannot_book_twice(client, make_class):
    offering = await make_class()
    url = f"/api/calendar/classes/{offering.id}/enroll"

    await client.post(url, json={"user_id": 1})
    again = await client.post(url, json={"user_id": 1})
    details = await client.get(f"/api/calendar/classes/{offering.id}/details")

    assert again.status_code == 409
    assert again.json()["detail"] == {
        "error": "ALREADY_ACTIVE",
        "message": "User is already enrolled for this class",
        "retryable": False,
    }
    assert details.json()["class_offering"]["capacity"]["current"] == 1
