"""Unit of Work Pattern Implementation.

Coordinates field store operations as a single database transaction.
A recalculation patches many fields and the return aggregate; either all
of it commits or none of it does.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from domain.events import DomainEvent
from domain.event_bus import EventBus, publish_events
from domain.repositories import IUnitOfWork
from database.field_store import SqlFieldStore

logger = logging.getLogger(__name__)


class SqlUnitOfWork(IUnitOfWork):
    """
    Unit of Work implementation using SQLAlchemy async sessions.

    Usage:
        async with SqlUnitOfWork(session_factory) as uow:
            await uow.store.patch_field(field.id, patch)
            # Auto-commits on clean exit

    The context manager automatically handles:
    - Creating a database session
    - Committing on clean exit
    - Rolling back on exception
    - Closing the session
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bus: Optional[EventBus] = None,
    ):
        self._session_factory = session_factory
        self._session: Optional[AsyncSession] = None
        self._store: Optional[SqlFieldStore] = None
        self._bus = bus
        self._committed: bool = False

        # Collected domain events
        self._pending_events: List[DomainEvent] = []

    @property
    def store(self) -> SqlFieldStore:
        if self._store is None:
            raise RuntimeError("UnitOfWork not initialized. Use 'async with' context.")
        return self._store

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("UnitOfWork not initialized")
        return self._session

    def collect_event(self, event: DomainEvent) -> None:
        """
        Collect a domain event for publishing after commit.

        Args:
            event: Domain event to publish.
        """
        self._pending_events.append(event)

    async def commit(self) -> None:
        """
        Commit all changes, then publish collected domain events.
        """
        if self._session is None:
            raise RuntimeError("UnitOfWork not initialized")

        if self._committed:
            return

        await self._session.commit()
        self._committed = True
        logger.debug("UnitOfWork committed")

        events, self._pending_events = self._pending_events, []
        await publish_events(events, self._bus)

    async def rollback(self) -> None:
        """Discard all pending changes and collected events."""
        if self._session is None:
            return

        await self._session.rollback()
        self._pending_events.clear()
        logger.debug("UnitOfWork rolled back")

    async def __aenter__(self) -> "SqlUnitOfWork":
        self._session = self._session_factory()
        self._store = SqlFieldStore(self._session)
        self._committed = False
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """
        Exit the async context.

        Commits if no exception, rolls back otherwise.
        Always closes the session.
        """
        try:
            if exc_type is not None:
                await self.rollback()
                logger.debug(f"UnitOfWork rolled back due to: {exc_type.__name__}")
            elif not self._committed:
                await self.commit()
        finally:
            if self._session is not None:
                await self._session.close()
                self._session = None
                self._store = None


class SqlUnitOfWorkFactory:
    """
    Factory for creating unit of work instances.

    Useful for dependency injection in services.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bus: Optional[EventBus] = None,
    ):
        self.session_factory = session_factory
        self.bus = bus

    def __call__(self) -> SqlUnitOfWork:
        return SqlUnitOfWork(self.session_factory, self.bus)
