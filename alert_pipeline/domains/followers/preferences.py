from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Set

from ...core.interfaces import DocumentStore, QueryFilter


logger = logging.getLogger(__name__)


class GroupPreferenceFilter(ABC):
    """Narrows a recipient set to those who want notifications for a group"""

    @abstractmethod
    async def filter(self, recipient_ids: Set[str], group_id: str) -> Set[str]:
        """Return the subset of ``recipient_ids`` eligible for ``group_id``"""


class FollowedOrganizationPreferenceFilter(GroupPreferenceFilter):
    """
    Opt-out preferences stored on ``followed_organizations`` documents.

    A follower stays eligible unless their document for the organization has
    ``group_preferences[group_id] is False``; a missing document or key means
    eligible. Read only.
    """

    collection = "followed_organizations"

    def __init__(self, store: DocumentStore, organization_id: str):
        self.store = store
        self.organization_id = organization_id

    async def filter(self, recipient_ids: Set[str], group_id: str) -> Set[str]:
        if not recipient_ids:
            return set()

        query = (
            QueryFilter()
            .eq("organization_id", self.organization_id)
            .in_list("user_id", sorted(recipient_ids))
        )
        docs = await self.store.query(self.collection, query.to_dict())

        opted_out = {
            doc.get("user_id")
            for doc in docs
            if (doc.get("group_preferences") or {}).get(group_id) is False
        }
        if opted_out:
            logger.debug(f"{len(opted_out)} followers opted out of group {group_id}")
        return recipient_ids - opted_out
