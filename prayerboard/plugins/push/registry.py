"""
Subscription registry: the set of push endpoints to notify, at most one per endpoint.
"""
import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from prayerboard.core.db import init_db, session_scope
from prayerboard.core.errors import InvalidSubscriptionError
from prayerboard.core.models import PushSubscriptionRecord

logger = logging.getLogger(__name__)

Subscription = Dict[str, Any]


def endpoint_of(subscription: Any) -> Optional[str]:
    """The identity of a subscription descriptor, or None when it has none."""
    if not isinstance(subscription, dict):
        return None
    endpoint = subscription.get("endpoint")
    if not isinstance(endpoint, str) or not endpoint.strip():
        return None
    return endpoint


def validate_subscription(subscription: Any) -> Subscription:
    if not isinstance(subscription, dict):
        raise InvalidSubscriptionError("Subscription must be a JSON object")
    if endpoint_of(subscription) is None:
        raise InvalidSubscriptionError("Subscription has no endpoint")
    keys = subscription.get("keys")
    if keys is not None and not isinstance(keys, dict):
        raise InvalidSubscriptionError("Subscription keys must be an object")
    return subscription


class SubscriptionRegistry(ABC):
    """Repository of push subscriptions keyed by endpoint."""

    @abstractmethod
    def add(self, subscription: Any) -> bool:
        """Insert unless an entry with the same endpoint exists. Returns True if inserted."""

    @abstractmethod
    def remove(self, subscription: Any) -> bool:
        """Delete the entry with this endpoint. Returns True if something was removed."""

    @abstractmethod
    def list_all(self) -> List[Subscription]:
        """Snapshot copy of all entries."""

    def endpoints(self) -> List[str]:
        return [s["endpoint"] for s in self.list_all()]

    def __len__(self) -> int:
        return len(self.list_all())


class InMemorySubscriptionRegistry(SubscriptionRegistry):
    """Process-lifetime registry; suitable for a single server process or tests."""

    def __init__(self):
        self._subs: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def add(self, subscription: Any) -> bool:
        endpoint = endpoint_of(subscription)
        if endpoint is None:
            return False
        with self._lock:
            if endpoint in self._subs:
                return False
            self._subs[endpoint] = copy.deepcopy(subscription)
        logger.info(f"Subscription added: {endpoint}")
        return True

    def remove(self, subscription: Any) -> bool:
        endpoint = endpoint_of(subscription)
        if endpoint is None:
            return False
        with self._lock:
            removed = self._subs.pop(endpoint, None) is not None
        if removed:
            logger.info(f"Subscription removed: {endpoint}")
        return removed

    def list_all(self) -> List[Subscription]:
        with self._lock:
            return [copy.deepcopy(s) for s in self._subs.values()]


class SqlSubscriptionRegistry(SubscriptionRegistry):
    """Durable registry backed by the push_subscriptions table."""

    def add(self, subscription: Any) -> bool:
        endpoint = endpoint_of(subscription)
        if endpoint is None:
            return False
        try:
            with session_scope() as session:
                existing = session.get(PushSubscriptionRecord, endpoint)
                if existing is not None:
                    return False
                expiration = subscription.get("expirationTime")
                session.add(PushSubscriptionRecord(
                    endpoint=endpoint,
                    keys=subscription.get("keys"),
                    expiration_time=None if expiration is None else str(expiration),
                    descriptor=subscription,
                ))
        except IntegrityError:
            # Lost a race with a concurrent add of the same endpoint
            return False
        logger.info(f"Subscription added: {endpoint}")
        return True

    def remove(self, subscription: Any) -> bool:
        endpoint = endpoint_of(subscription)
        if endpoint is None:
            return False
        with session_scope() as session:
            result = session.execute(
                delete(PushSubscriptionRecord).where(PushSubscriptionRecord.endpoint == endpoint)
            )
            removed = (result.rowcount or 0) > 0
        if removed:
            logger.info(f"Subscription removed: {endpoint}")
        return removed

    def list_all(self) -> List[Subscription]:
        with session_scope() as session:
            rows = session.execute(
                select(PushSubscriptionRecord).order_by(PushSubscriptionRecord.created_at)
            ).scalars().all()
            return [row.to_subscription() for row in rows]


def create_registry(config_data: Optional[Dict[str, Any]] = None) -> SubscriptionRegistry:
    """Factory: registry backend from config (registry.backend: sql | memory)."""
    backend = ((config_data or {}).get("registry") or {}).get("backend", "sql")
    if backend == "memory":
        logger.warning("Using in-memory subscription registry; registrations are lost on restart")
        return InMemorySubscriptionRegistry()
    if backend != "sql":
        raise ValueError(f"Unknown registry backend: {backend}")
    init_db(config_data)
    return SqlSubscriptionRegistry()
