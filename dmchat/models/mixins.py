# dmchat/models/mixins.py
from sqlalchemy import Column, DateTime
from datetime import datetime, timezone
import uuid


def generate_uuid():
    """Generate a UUID string for use as a primary key"""
    return str(uuid.uuid4())


def utcnow():
    """Timezone-aware current time, microsecond precision"""
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin to add created_at and updated_at columns to models"""
    # Assigned in Python so ordering keeps microsecond resolution on every backend
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
