"""
Identity provider used to attribute alerts posted outside the scheduler.

The pipeline never authenticates anyone; it only reads who the caller is.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel


class Identity(BaseModel):
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None


class IdentityProvider(ABC):
    @abstractmethod
    async def current_identity(self) -> Optional[Identity]:
        """Return the authenticated identity, or None"""


class StaticIdentityProvider(IdentityProvider):
    """Returns a fixed identity (service accounts, scripts, tests)"""

    def __init__(self, identity: Optional[Identity] = None):
        self._identity = identity

    async def current_identity(self) -> Optional[Identity]:
        return self._identity
