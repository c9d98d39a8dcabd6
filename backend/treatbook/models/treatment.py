# backend/treatbook/models/treatment.py
"""Treatment catalogue model."""

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.sql import func
import ulid

from ..database import Base


class Treatment(Base):
    """A bookable service. Unavailable treatments cannot receive new bookings."""

    __tablename__ = "treatments"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False)
    speciality = Column(String(255), nullable=False, default="")
    image = Column(String(500), nullable=False, default="")
    available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Treatment {self.id} {self.name!r} available={self.available}>"
