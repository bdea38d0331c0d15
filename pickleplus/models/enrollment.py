"""Enrollment record model."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pickleplus.core.database import Base


class EnrollmentState(str, Enum):
    """Enrollment state enum."""

    PENDING = "PENDING"
    ENROLLED = "ENROLLED"
    WAITLISTED = "WAITLISTED"
    CANCELLED = "CANCELLED"


ACTIVE_STATES = (EnrollmentState.ENROLLED, EnrollmentState.WAITLISTED)


class EnrollmentRecord(Base):
    """A player's claim on a slot (or waitlist place) in a class offering.

    There is one row per (class, user); cancelled rows are reactivated when the
    player books the same class again, so a player never holds two active
    records for one class.
    """

    __tablename__ = "enrollment_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("class_offerings.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    state: Mapped[EnrollmentState] = mapped_column(
        SQLEnum(EnrollmentState), default=EnrollmentState.PENDING, nullable=False
    )
    position: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )  # Waitlist position, set only while WAITLISTED
    enrollment_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="advance"
    )  # advance, walk_in
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # pending, paid, refunded
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    class_offering: Mapped["ClassOffering"] = relationship(
        "ClassOffering", back_populates="enrollment_records"
    )

    __table_args__ = (
        UniqueConstraint("class_id", "user_id", name="uq_enrollment_class_user"),
        Index("idx_enrollment_class_state", "class_id", "state"),
    )

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def __repr__(self) -> str:
        return (
            f"<EnrollmentRecord(id={self.id}, class_id={self.class_id}, "
            f"user_id={self.user_id}, state={self.state}, position={self.position})>"
        )
