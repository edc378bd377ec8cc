"""
Web Push delivery via pywebpush, signed with the configured VAPID keys.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pywebpush import WebPushException, webpush

from prayerboard.core.errors import PushConfigError

logger = logging.getLogger(__name__)

GONE_STATUSES = frozenset({404, 410})


@dataclass(frozen=True)
class VapidConfig:
    subject: str
    public_key: str
    private_key: str
    ttl: int = 300

    @classmethod
    def from_config(cls, config_data: Dict[str, Any]) -> "VapidConfig":
        push = (config_data or {}).get("push") or {}
        subject = push.get("vapid_subject")
        public_key = push.get("vapid_public_key")
        private_key = push.get("vapid_private_key")
        missing = [name for name, value in (
            ("vapid_subject", subject),
            ("vapid_public_key", public_key),
            ("vapid_private_key", private_key),
        ) if not value]
        if missing:
            raise PushConfigError(f"Missing push configuration: {', '.join(missing)}")
        return cls(subject=subject, public_key=public_key, private_key=private_key,
                   ttl=int(push.get("ttl") or 300))


@dataclass(frozen=True)
class DeliveryOutcome:
    endpoint: str
    ok: bool
    status: Optional[int] = None
    error: Optional[str] = None

    @property
    def gone(self) -> bool:
        """The push service says this endpoint no longer exists."""
        return not self.ok and self.status in GONE_STATUSES


class PushSender:
    def __init__(self, vapid: VapidConfig):
        self.vapid = vapid
        self.logger = logging.getLogger(self.__class__.__name__)

    def send(self, subscription: Dict[str, Any], payload: Dict[str, Any]) -> DeliveryOutcome:
        """Deliver one JSON payload. Failures come back as outcomes, never as exceptions."""
        endpoint = subscription.get("endpoint", "")
        try:
            webpush(
                subscription_info=subscription,
                data=json.dumps(payload),
                vapid_private_key=self.vapid.private_key,
                vapid_claims={"sub": self.vapid.subject},
                ttl=self.vapid.ttl,
            )
        except WebPushException as e:
            status = e.response.status_code if e.response is not None else None
            return DeliveryOutcome(endpoint=endpoint, ok=False, status=status, error=str(e))
        except Exception as e:
            # Malformed keys, connection errors and the like
            return DeliveryOutcome(endpoint=endpoint, ok=False, error=str(e))
        return DeliveryOutcome(endpoint=endpoint, ok=True, status=201)


def create_sender(config_data: Dict[str, Any]) -> PushSender:
    return PushSender(VapidConfig.from_config(config_data))
