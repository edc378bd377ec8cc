"""
Core DB models: durable push subscription registry.
"""
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import Column, String, DateTime, JSON

from prayerboard.core.db import Base


def _utc_now() -> datetime:
    """UTC now as naive datetime for DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PushSubscriptionRecord(Base):
    """One registered push endpoint. The endpoint URL is the identity; at most one row per endpoint."""
    __tablename__ = "push_subscriptions"

    endpoint = Column(String(2048), primary_key=True)
    keys = Column(JSON, nullable=True)  # {"p256dh": ..., "auth": ...}
    expiration_time = Column(String(64), nullable=True)
    descriptor = Column(JSON, nullable=False)  # full subscription object as received
    created_at = Column(DateTime(timezone=False), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=False), default=_utc_now, onupdate=_utc_now, nullable=False)

    def to_subscription(self) -> Dict[str, Any]:
        """Return the descriptor in the shape the push transport expects."""
        sub = dict(self.descriptor or {})
        sub["endpoint"] = self.endpoint
        if self.keys is not None:
            sub["keys"] = self.keys
        return sub
