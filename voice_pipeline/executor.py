"""
Reminder execution against the calendar REST service.

Two dependent calls per command, both authorized with the bearer token the
client connected with:
1) GET  {base}/users/myself/relations   directory of known people
2) POST {base}/reminders                the resolved reminder
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Iterable, Mapping, Optional, Protocol

import aiohttp

from logging_setup import get_logger, Component

from .errors import SaveError
from .http import PooledHttpSession
from .models import Action, ResolvedAction

logger = get_logger(Component.EXECUTOR)

DEFAULT_CALENDAR_API_URL = "https://calendar.knilxof.org/api/v2"


class ActionExecutor(Protocol):
    """Resolves recipients and persists an action; raises SaveError on failure."""

    async def execute(self, action: Action, token: str) -> ResolvedAction: ...


def match_identity(forename: str, directory: Iterable[Mapping[str, Any]]) -> Optional[Any]:
    """Case-insensitive forename lookup; None when nobody matches."""
    wanted = forename.lower()
    for entry in directory:
        name = entry.get("forename") or entry.get("displayName") or ""
        if name.lower() == wanted:
            return entry.get("id")
    return None


class CalendarExecutor:
    """ActionExecutor backed by the calendar service REST API."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_CALENDAR_API_URL,
        http: Optional[PooledHttpSession] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._http = http or PooledHttpSession("calendar", Component.EXECUTOR)

    @staticmethod
    def _headers(token: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json;charset=UTF-8",
            "Authorization": f"Bearer {token}",
        }

    async def fetch_directory(self, token: str) -> list[Mapping[str, Any]]:
        endpoint = f"{self._base_url}/users/myself/relations"
        start_ts = time.time()
        try:
            session = self._http.get()
            async with session.get(endpoint, headers=self._headers(token)) as resp:
                if not 200 <= resp.status < 300:
                    raise SaveError(f"Cannot get the users id (HTTP {resp.status})")
                directory = await resp.json(content_type=None)
        except SaveError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise SaveError(f"Cannot get the users id ({type(e).__name__})") from e

        if not isinstance(directory, list):
            raise SaveError("Cannot get the users id (unexpected directory format)")

        logger.info(
            "Directory fetched",
            entries=len(directory),
            latency_ms=int((time.time() - start_ts) * 1000),
        )
        return directory

    async def resolve_recipients(self, action: Action, token: str) -> ResolvedAction:
        """One directory call per action, not per recipient."""
        directory = await self.fetch_directory(token)
        identities = tuple(match_identity(name, directory) for name in action.recipients)
        unmatched = [name for name, identity in zip(action.recipients, identities) if identity is None]
        if unmatched:
            logger.debug_pii("Recipients without identity", recipients=unmatched)
        return action.resolve(identities)

    async def save(self, resolved: ResolvedAction, token: str) -> None:
        endpoint = f"{self._base_url}/reminders"
        start_ts = time.time()
        try:
            session = self._http.get()
            async with session.post(
                endpoint,
                headers=self._headers(token),
                json=resolved.to_payload(),
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise SaveError(f"Cannot save the reminder (HTTP {resp.status})")
        except SaveError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SaveError(f"Cannot save the reminder ({type(e).__name__})") from e

        logger.info(
            "Reminder saved",
            recipients=len(resolved.recipient_ids),
            latency_ms=int((time.time() - start_ts) * 1000),
        )

    async def execute(self, action: Action, token: str) -> ResolvedAction:
        resolved = await self.resolve_recipients(action, token)
        await self.save(resolved, token)
        return resolved

    async def aclose(self) -> None:
        await self._http.aclose()
