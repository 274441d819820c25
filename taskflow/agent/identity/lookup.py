from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from taskflow.agent.cognition.entity_resolver import EntityDirectory, UserRecord

logger = logging.getLogger(__name__)


class UnauthenticatedCaller(Exception):
    pass


class IdentityResolutionError(Exception):
    def __init__(self, caller_id: str, message: str | None = None) -> None:
        super().__init__(message or f"No internal record for caller {caller_id}")
        self.caller_id = caller_id


@dataclass(frozen=True)
class CallerProfile:
    caller_id: str
    internal_id: str | None = None
    display_name: str | None = None
    email: str | None = None

    def describe(self) -> str:
        name = self.display_name or "Unknown user"
        if self.email:
            return f"{name} ({self.email})"
        return name


class IdentityLookup(Protocol):
    async def resolve_internal_id(self, external_id: str) -> str | None: ...

    async def get_profile(self, caller_id: str) -> CallerProfile: ...


class DirectoryIdentityLookup:
    """Maps external caller identities onto directory user records."""

    def __init__(self, directory: EntityDirectory) -> None:
        self._directory = directory

    async def resolve_internal_id(self, external_id: str) -> str | None:
        user = await self._find(external_id)
        if user is None:
            logger.info("identity unresolved external_id=%s", external_id)
            return None
        return user.id

    async def get_profile(self, caller_id: str) -> CallerProfile:
        user = await self._find(caller_id)
        if user is None:
            return CallerProfile(caller_id=caller_id)
        return CallerProfile(
            caller_id=caller_id,
            internal_id=user.id,
            display_name=user.full_name or None,
            email=user.email or None,
        )

    async def _find(self, external_id: str) -> UserRecord | None:
        value = str(external_id or "").strip()
        if not value:
            return None
        users = await self._directory.users()
        for user in users:
            if user.external_id == value:
                return user
        for user in users:
            if user.id == value:
                return user
        return None
