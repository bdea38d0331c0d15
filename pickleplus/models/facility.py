"""Facility model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pickleplus.core.database import Base


class Facility(Base):
    """Training center where bookable classes take place."""

    __tablename__ = "facilities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    access_code: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, index=True
    )  # QR / manual check-in code, e.g. TC001-SG
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    class_offerings: Mapped[list["ClassOffering"]] = relationship(
        "ClassOffering", back_populates="facility"
    )

    def __repr__(self) -> str:
        return (
            f"<Facility(id={self.id}, name='{self.name}', "
            f"access_code='{self.access_code}')>"
        )
