"""Owner directory: the room/toy service as seen from the scheduler.

The scheduler only ever asks two questions about an owner: which timezone
their room uses, and whether a trigger applies to them (e.g. "has a toy on
the tree", "created a room").
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Protocol
from urllib.parse import quote

import httpx

from countdown.core.exceptions import PredicateEvaluationError

logger = logging.getLogger(__name__)


class OwnerDirectory(Protocol):
    async def get_timezone(self, owner_id: str) -> str | None:
        """IANA zone of the owner's room, or ``None`` when not set."""
        ...

    async def is_eligible(self, owner_id: str, trigger_id: str) -> bool: ...


class StaticOwnerDirectory:
    """In-memory directory, for tests and single-process setups."""

    def __init__(
        self,
        timezones: Mapping[str, str | None] | None = None,
        eligibility: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        self.timezones: dict[str, str | None] = dict(timezones or {})
        self.eligibility: dict[str, set[str]] = {owner: set(ids) for owner, ids in (eligibility or {}).items()}

    def set_timezone(self, owner_id: str, timezone_name: str | None) -> None:
        self.timezones[owner_id] = timezone_name

    def grant(self, owner_id: str, *trigger_ids: str) -> None:
        self.eligibility.setdefault(owner_id, set()).update(trigger_ids)

    def revoke(self, owner_id: str, *trigger_ids: str) -> None:
        self.eligibility.get(owner_id, set()).difference_update(trigger_ids)

    async def get_timezone(self, owner_id: str) -> str | None:
        return self.timezones.get(owner_id)

    async def is_eligible(self, owner_id: str, trigger_id: str) -> bool:
        return trigger_id in self.eligibility.get(owner_id, set())


class HttpOwnerDirectory:
    """Directory answered by the room/toy service over HTTP.

    ``GET {base}/owners/{id}/timezone`` → ``{"timezone": "Asia/Tokyo" | null}``
    ``GET {base}/owners/{id}/eligibility/{trigger}`` → ``{"eligible": true}``

    A 404 on the timezone lookup means "not set"; any other failure is a
    :class:`PredicateEvaluationError`.
    """

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None, timeout: float = 5.0) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, owner_id: str, *parts: str) -> str:
        segments = "/".join(quote(p, safe="") for p in (owner_id, *parts))
        return f"{self.base_url}/owners/{segments}"

    async def get_timezone(self, owner_id: str) -> str | None:
        try:
            resp = await self._client.get(self._url(owner_id, "timezone"))
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.json().get("timezone") or None
        except (httpx.HTTPError, ValueError) as e:
            raise PredicateEvaluationError(owner_id, cause=e) from e

    async def is_eligible(self, owner_id: str, trigger_id: str) -> bool:
        try:
            resp = await self._client.get(self._url(owner_id, "eligibility", trigger_id))
            resp.raise_for_status()
            return bool(resp.json().get("eligible", False))
        except (httpx.HTTPError, ValueError) as e:
            raise PredicateEvaluationError(owner_id, trigger_id, cause=e) from e
