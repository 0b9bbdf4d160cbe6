from __future__ import annotations

import logging
from typing import Callable, Optional, Set

from ...core.interfaces import DocumentStore, QueryFilter
from ...shared.exceptions import NotFoundError
from .preferences import FollowedOrganizationPreferenceFilter, GroupPreferenceFilter


logger = logging.getLogger(__name__)

PreferenceFilterFactory = Callable[[DocumentStore, str], GroupPreferenceFilter]


class FollowerResolver:
    """Computes the eligible recipient set for one publish. Nothing is cached."""

    def __init__(
        self,
        store: DocumentStore,
        preference_filter_factory: PreferenceFilterFactory = FollowedOrganizationPreferenceFilter,
    ):
        self.store = store
        self.preference_filter_factory = preference_filter_factory

    async def active_followers(self, organization_id: str) -> Set[str]:
        query = QueryFilter().eq("organization_id", organization_id).eq("is_active", True)
        docs = await self.store.query("organization_followers", query.to_dict())
        return {doc["user_id"] for doc in docs if doc.get("user_id")}

    async def eligible_recipients(
        self,
        organization_id: str,
        poster_id: str,
        group_id: Optional[str] = None
    ) -> Set[str]:
        """
        Active followers of the organization, minus the poster, optionally
        narrowed to those accepting notifications for ``group_id``.

        Raises:
            NotFoundError: the organization does not exist.
        """
        if await self.store.get("organizations", organization_id) is None:
            raise NotFoundError("Organization", organization_id)

        recipients = await self.active_followers(organization_id)
        # The poster never receives their own alert, whatever their follow state
        recipients.discard(poster_id)

        if group_id and recipients:
            preference_filter = self.preference_filter_factory(self.store, organization_id)
            recipients = set(await preference_filter.filter(recipients, group_id))
            # Poster exclusion holds for the filter's output too
            recipients.discard(poster_id)

        logger.info(
            "Resolved %d eligible recipients for organization %s (group=%s)",
            len(recipients), organization_id, group_id,
        )
        return recipients
