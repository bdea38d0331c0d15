"""Class offering model."""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pickleplus.core.database import Base


class ClassStatus(str, Enum):
    """Class offering status enum."""

    SCHEDULED = "SCHEDULED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class ClassOffering(Base):
    """One scheduled class instance on a given date and time slot.

    ``current_enrollment`` and ``waitlist_count`` are owned by
    ``EnrollmentCoordinator`` and change only inside its transactions.
    """

    __tablename__ = "class_offerings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    class_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    skill_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default="beginner"
    )  # beginner, intermediate, advanced
    min_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=8)
    current_enrollment: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    waitlist_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    coach_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    coach_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    court_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[ClassStatus] = mapped_column(
        SQLEnum(ClassStatus), default=ClassStatus.SCHEDULED, nullable=False
    )
    auto_cancel_hours: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, default=24
    )  # Cancel this many hours before start if still below minimum
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    # Bumped by the ORM on every UPDATE; read models compare it across processes
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    facility: Mapped["Facility"] = relationship("Facility", back_populates="class_offerings")
    enrollment_records: Mapped[list["EnrollmentRecord"]] = relationship(
        "EnrollmentRecord", back_populates="class_offering"
    )

    __table_args__ = (
        CheckConstraint(
            "current_enrollment >= 0 AND current_enrollment <= max_participants",
            name="ck_class_offering_capacity",
        ),
        CheckConstraint(
            "min_participants >= 0 AND min_participants <= max_participants",
            name="ck_class_offering_minimum",
        ),
        CheckConstraint("waitlist_count >= 0", name="ck_class_offering_waitlist"),
        Index("idx_class_offering_facility_date", "facility_id", "class_date"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def spots_left(self) -> int:
        return max(self.max_participants - self.current_enrollment, 0)

    @property
    def is_bookable(self) -> bool:
        """A class accepts direct enrollment while it has free slots."""
        return self.current_enrollment < self.max_participants

    @property
    def is_viable(self) -> bool:
        """A class runs only once its minimum enrollment is reached."""
        return self.current_enrollment >= self.min_participants

    def __repr__(self) -> str:
        return (
            f"<ClassOffering(id={self.id}, name='{self.name}', "
            f"date={self.class_date}, time={self.start_time}, "
            f"enrolled={self.current_enrollment}/{self.max_participants}, "
            f"status={self.status})>"
        )
