"""Database models for the Pickle+ class booking service."""

from pickleplus.models.audit_log import AuditLog
from pickleplus.models.class_offering import ClassOffering, ClassStatus
from pickleplus.models.enrollment import ACTIVE_STATES, EnrollmentRecord, EnrollmentState
from pickleplus.models.facility import Facility

__all__ = [
    "Facility",
    "ClassOffering",
    "ClassStatus",
    "EnrollmentRecord",
    "EnrollmentState",
    "ACTIVE_STATES",
    "AuditLog",
]
