"""
Schedule Models for Maintenance Visits
"""

import uuid

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for a schedule record"""
    return str(uuid.uuid4())


class ScheduleEntry(Base):
    """
    One schedule record: a standalone weekday visit, a recurring template
    or a date-specific override (replacement or cancellation).
    """

    __tablename__ = "schedule_records"

    # Insertion order; records are always read back in this order
    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(
        String(36), unique=True, nullable=False, index=True, default=generate_public_id
    )

    # Denormalized contract reference (owned by contract management)
    contract_id = Column(String(64), nullable=False, index=True)
    contract_name = Column(String(255), nullable=False, default="")
    address = Column(String(500), nullable=True)

    # Scheduling
    weekday = Column(String(16), nullable=True)  # monday ... sunday
    time = Column(String(5), nullable=False, default="08:00")  # HH:MM format
    notes = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    # {"type": "day_interval", "interval": 7, "start_date": "YYYY-MM-DD", "end_date": ...}
    recurrence_rule = Column(JSON, nullable=True)

    # Set on overrides only: which record and date this record replaces or cancels
    override_template_id = Column(String(36), nullable=True, index=True)
    override_date = Column(Date, nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
