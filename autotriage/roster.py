"""Roster of triagers eligible for random fallback assignment."""

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from autotriage.settings import TriageSettings

log = logging.getLogger(__name__)


class RosterProvider(ABC):
    @abstractmethod
    async def fetch_eligible_identities(self) -> frozenset[str] | None:
        """Return the current triagers, or None when the roster is unavailable."""


class NullRoster(RosterProvider):
    """No roster store configured: fallback assignment is disabled."""

    async def fetch_eligible_identities(self) -> frozenset[str] | None:
        return None


class MongoRoster(RosterProvider):
    """Reads ``{id, triager}`` documents from a MongoDB collection."""

    def __init__(self, client: AsyncMongoClient, database: str | None, collection: str) -> None:
        self._client = client
        self._database = database
        self._collection = collection

    async def fetch_eligible_identities(self) -> frozenset[str] | None:
        try:
            db = self._client[self._database] if self._database else self._client.get_default_database()
            documents = await db[self._collection].find({}, {"id": 1, "triager": 1}).to_list(length=None)
        except PyMongoError as exc:
            log.warning("error reading roster from %s: %s", self._collection, exc)
            return None
        triagers = frozenset(doc["id"] for doc in documents if doc.get("triager") and doc.get("id"))
        log.info("roster has %d eligible triager(s)", len(triagers))
        return triagers


@contextlib.asynccontextmanager
async def open_roster(settings: TriageSettings) -> AsyncIterator[RosterProvider]:
    """Open the configured roster store for the duration of a run.

    The client is closed on every exit path. A missing or unusable connection
    string yields a NullRoster instead of failing the run.
    """
    if not settings.roster_connection_string:
        log.info("no roster connection string, random fallback disabled")
        yield NullRoster()
        return

    try:
        client: AsyncMongoClient = AsyncMongoClient(
            settings.roster_connection_string.get_secret_value(),
            serverSelectionTimeoutMS=10_000,
        )
    except PyMongoError as exc:
        log.warning("could not open roster store: %s", exc)
        yield NullRoster()
        return

    log.debug("connected to roster store")
    try:
        yield MongoRoster(client, settings.roster_database, settings.roster_collection)
    finally:
        await client.close()
        log.debug("disconnected from roster store")


class RosterSnapshot:
    """One roster lookup per run, started eagerly and awaited lazily.

    Must be created inside a running event loop. Every caller of get() shares
    the same result; failures resolve to None.
    """

    def __init__(self, roster: RosterProvider) -> None:
        self._task: asyncio.Task[frozenset[str] | None] = asyncio.create_task(self._fetch(roster))

    @staticmethod
    async def _fetch(roster: RosterProvider) -> frozenset[str] | None:
        try:
            return await roster.fetch_eligible_identities()
        except Exception:
            log.exception("roster lookup failed")
            return None

    async def get(self) -> frozenset[str] | None:
        return await self._task

    async def aclose(self) -> None:
        if not self._task.done():
            self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
