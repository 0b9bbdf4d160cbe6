"""
Pytest configuration and shared fixtures.

Provides an in-memory DocumentStore with the same filter semantics as the
MongoDB adapter, plus sample alerts and pipeline components wired to it.
"""

import copy
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

# Configure test environment before importing pipeline modules
os.environ.setdefault("ALERTS_TIMEZONE", "UTC")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("PUSH_PROVIDER", "dev")
os.environ.setdefault("EMAIL_PROVIDER", "dev")

from alert_pipeline.core.interfaces import DocumentStore, SERVER_TIMESTAMP
from alert_pipeline.domains.followers.resolver import FollowerResolver
from alert_pipeline.domains.notifications.dispatcher import NotificationDispatcher
from alert_pipeline.domains.notifications.models import FanoutReport
from alert_pipeline.domains.organization_alerts.publisher import AlertPublisher
from alert_pipeline.domains.organization_alerts.repository import OrganizationAlertRepository
from alert_pipeline.domains.scheduled_alerts.models import ScheduledAlert
from alert_pipeline.domains.scheduled_alerts.repository import ScheduledAlertRepository
from alert_pipeline.domains.scheduled_alerts.scheduler import ExecutionScheduler
from alert_pipeline.shared.exceptions import NotFoundError, PersistenceError


T0 = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)
VALID_TOKEN = "f" * 152


def _matches(doc: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    for field, condition in filter.items():
        present = field in doc
        value = doc.get(field)
        if not isinstance(condition, dict):
            if value != condition:
                return False
            continue
        for op, operand in condition.items():
            if op == "$ne":
                if value == operand:
                    return False
            elif op == "$in":
                if value not in operand:
                    return False
            elif op in ("$lt", "$lte", "$gt", "$gte"):
                if not present or value is None:
                    return False
                if op == "$lt" and not value < operand:
                    return False
                if op == "$lte" and not value <= operand:
                    return False
                if op == "$gt" and not value > operand:
                    return False
                if op == "$gte" and not value >= operand:
                    return False
            else:
                raise NotImplementedError(op)
    return True


class InMemoryDocumentStore(DocumentStore):
    """DocumentStore fake with failure injection and a call log"""

    def __init__(self, now: Optional[datetime] = None):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.now = now or T0
        self.calls: List[Tuple[str, str, Optional[str]]] = []
        self._failures: Dict[Tuple[str, str], int] = {}

    # -- test helpers -------------------------------------------------

    def fail(self, operation: str, collection: str, times: int = 10**6) -> None:
        """Make ``operation`` on ``collection`` raise PersistenceError ``times`` times"""
        self._failures[(operation, collection)] = times

    def seed(self, collection: str, document_id: str, fields: Dict[str, Any]) -> None:
        self.collections.setdefault(collection, {})[document_id] = {**copy.deepcopy(fields), "_id": document_id}

    def docs(self, collection: str) -> List[Dict[str, Any]]:
        return [copy.deepcopy(d) for d in self.collections.get(collection, {}).values()]

    def doc(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        found = self.collections.get(collection, {}).get(document_id)
        return copy.deepcopy(found) if found is not None else None

    def _check(self, operation: str, collection: str, document_id: Optional[str] = None) -> None:
        self.calls.append((operation, collection, document_id))
        remaining = self._failures.get((operation, collection), 0)
        if remaining > 0:
            self._failures[(operation, collection)] = remaining - 1
            raise PersistenceError(f"injected {operation} failure", collection=collection, operation=operation)

    def _resolve(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return {k: (self.now if v is SERVER_TIMESTAMP else copy.deepcopy(v)) for k, v in fields.items()}

    # -- DocumentStore ------------------------------------------------

    async def query(self, collection, filter=None, order_by=None, limit=None):
        self._check("query", collection)
        docs = [d for d in self.docs(collection) if _matches(d, filter or {})]
        for field, direction in reversed(order_by or []):
            docs.sort(key=lambda d: (d.get(field) is None, d.get(field)), reverse=direction < 0)
        return docs[:limit] if limit else docs

    async def get(self, collection, document_id):
        self._check("get", collection, document_id)
        return self.doc(collection, document_id)

    async def set(self, collection, document_id, fields, merge=False):
        self._check("set", collection, document_id)
        bucket = self.collections.setdefault(collection, {})
        resolved = self._resolve(fields)
        if merge and document_id in bucket:
            bucket[document_id].update(resolved)
        else:
            bucket[document_id] = {**resolved, "_id": document_id}

    async def update(self, collection, document_id, fields):
        self._check("update", collection, document_id)
        bucket = self.collections.get(collection, {})
        if document_id not in bucket:
            raise NotFoundError(collection, document_id)
        bucket[document_id].update(self._resolve(fields))

    async def delete(self, collection, document_id):
        self._check("delete", collection, document_id)
        return self.collections.get(collection, {}).pop(document_id, None) is not None

    async def atomic_increment(self, collection, document_id, field, delta=1):
        self._check("atomic_increment", collection, document_id)
        bucket = self.collections.get(collection, {})
        if document_id not in bucket:
            raise NotFoundError(collection, document_id)
        bucket[document_id][field] = bucket[document_id].get(field, 0) + delta
        bucket[document_id]["updated_at"] = self.now

    async def count(self, collection, filter=None):
        self._check("count", collection)
        return sum(1 for d in self.collections.get(collection, {}).values() if _matches(d, filter or {}))


def scheduled_alert_doc(alert_id: str = "sa-1", **overrides) -> Dict[str, Any]:
    """Stored scheduled alert document"""
    doc = {
        "_id": alert_id,
        "title": "Street sweeping",
        "description": "North side of Main St",
        "organization_id": "org-1",
        "organization_name": "Denton Public Works",
        "group_id": None,
        "group_name": None,
        "type": "road",
        "severity": "medium",
        "location": None,
        "scheduled_date": T0,
        "is_recurring": False,
        "recurrence_pattern": None,
        "posted_by": "Pat Poster",
        "posted_by_user_id": "user-poster",
        "is_active": True,
        "expires_at": None,
        "image_urls": [],
        "calendar_event_id": None,
        "created_at": T0 - timedelta(days=3),
        "updated_at": T0 - timedelta(days=3),
    }
    doc.update(overrides)
    return doc


def seed_organization(store: InMemoryDocumentStore, organization_id: str = "org-1",
                      followers: Tuple[str, ...] = (), alert_count: int = 0) -> None:
    store.seed("organizations", organization_id, {"name": "Denton Public Works", "alert_count": alert_count})
    for user_id in followers:
        store.seed("organization_followers", f"{organization_id}_{user_id}", {
            "organization_id": organization_id, "user_id": user_id, "is_active": True,
        })


def seed_user(store: InMemoryDocumentStore, user_id: str, email: Optional[str] = None,
              fcm_token: Optional[str] = None, alerts_enabled: bool = True) -> None:
    store.seed("users", user_id, {"email": email, "fcm_token": fcm_token, "alerts_enabled": alerts_enabled})


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def sample_alert():
    return ScheduledAlert.from_document(scheduled_alert_doc())


@pytest.fixture
def mock_dispatcher():
    """Dispatcher double whose fan-out reports every recipient delivered"""
    dispatcher = AsyncMock(spec=NotificationDispatcher)

    async def _fan_out(recipients, live_alert):
        recipients = set(recipients)
        return FanoutReport(alert_id=live_alert.id, attempted=len(recipients), delivered=len(recipients))

    dispatcher.fan_out.side_effect = _fan_out
    return dispatcher


@pytest.fixture
def publisher(store, mock_dispatcher):
    return AlertPublisher(
        repository=OrganizationAlertRepository(store),
        resolver=FollowerResolver(store),
        dispatcher=mock_dispatcher,
    )


@pytest.fixture
def scheduler(store, publisher):
    return ExecutionScheduler(repository=ScheduledAlertRepository(store), publisher=publisher)
