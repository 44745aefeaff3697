# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Programmatic migration runner for the enrollment store.

Revisions are the modules of the ``versions`` package, applied in name
order. Each one defines ``upgrade()`` and ``downgrade()`` with alembic
operations. The applied revision is kept in ``alembic_version`` so the
schema stays readable by the alembic CLI as well.

Example:
    applied = await run_migrations(settings.database.url)
    status = await get_migration_status(settings.database.url)
"""

import importlib
import logging
import pkgutil
from types import ModuleType
from typing import Any

from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.infrastructure.database.migrations import versions

logger = logging.getLogger(__name__)


class MigrationError(Exception):
    """Raised when a revision cannot be loaded or the history is unknown."""


def discover_revisions() -> list[str]:
    """List revision module names in apply order."""
    return sorted(
        info.name
        for info in pkgutil.iter_modules(versions.__path__)
        if not info.name.startswith("_")
    )


MIGRATIONS = discover_revisions()


class MigrationRunner:
    """Moves one database between revisions.

    Every revision runs in its own transaction together with the
    version bookkeeping, so a failed revision leaves the previous one
    recorded.
    """

    def __init__(self, engine: AsyncEngine, revisions: list[str] | None = None) -> None:
        self.engine = engine
        self.revisions = list(revisions if revisions is not None else MIGRATIONS)

    async def current(self) -> str | None:
        async with self.engine.begin() as conn:
            await conn.execute(
                text(
                    "CREATE TABLE IF NOT EXISTS alembic_version ("
                    "version_num VARCHAR(128) NOT NULL, "
                    "CONSTRAINT alembic_version_pkc PRIMARY KEY (version_num))"
                )
            )
            return await conn.scalar(text("SELECT version_num FROM alembic_version LIMIT 1"))

    def _position(self, revision: str | None) -> int:
        """Number of revisions applied up to and including revision."""
        if revision is None:
            return 0
        try:
            return self.revisions.index(revision) + 1
        except ValueError:
            raise MigrationError(f"Unknown revision: {revision}") from None

    async def upgrade(self, target: str | None = None) -> list[str]:
        """Apply revisions after the current one, up to target or the latest."""
        start = self._position(await self.current())
        end = self._position(target) if target else len(self.revisions)
        pending = self.revisions[start:end]

        for revision in pending:
            await self._step(revision, "upgrade", revision)
            logger.info("Applied migration: %s", revision)

        if not pending:
            logger.info("No pending migrations")
        return pending

    async def downgrade(self, target: str | None = None) -> list[str]:
        """Revert revisions down to target, or to an empty schema."""
        start = self._position(await self.current())
        end = self._position(target)
        reverted = list(reversed(self.revisions[end:start]))

        for revision in reverted:
            position = self.revisions.index(revision)
            previous = self.revisions[position - 1] if position else None
            await self._step(revision, "downgrade", previous)
            logger.info("Reverted migration: %s", revision)

        return reverted

    async def status(self) -> dict[str, Any]:
        current = await self.current()
        pending = self.revisions[self._position(current):]
        return {
            "current_version": current,
            "latest_version": self.revisions[-1] if self.revisions else None,
            "pending_migrations": pending,
            "is_up_to_date": not pending,
        }

    async def _step(self, revision: str, direction: str, record: str | None) -> None:
        module = _load(revision)
        async with self.engine.begin() as conn:
            await conn.run_sync(_run_operations, getattr(module, direction))
            await conn.execute(text("DELETE FROM alembic_version"))
            if record is not None:
                await conn.execute(
                    text("INSERT INTO alembic_version (version_num) VALUES (:version)"),
                    {"version": record},
                )


def _load(revision: str) -> ModuleType:
    try:
        module = importlib.import_module(f"{versions.__name__}.{revision}")
    except ImportError as e:
        raise MigrationError(f"Cannot import migration {revision}: {e}") from e

    for name in ("upgrade", "downgrade"):
        if not callable(getattr(module, name, None)):
            raise MigrationError(f"Migration {revision} has no {name}() function")
    return module


def _run_operations(connection: Connection, step) -> None:
    # alembic's op proxy resolves against the context entered here
    context = MigrationContext.configure(connection)
    with Operations.context(context):
        step()


async def run_migrations(db_url: str, target_revision: str | None = None) -> list[str]:
    """Upgrade the database at db_url. Returns the revisions applied."""
    engine = create_async_engine(db_url)
    try:
        return await MigrationRunner(engine).upgrade(target_revision)
    finally:
        await engine.dispose()


async def rollback_migrations(db_url: str, target_revision: str | None = None) -> list[str]:
    """Downgrade the database at db_url. Returns the revisions reverted."""
    engine = create_async_engine(db_url)
    try:
        return await MigrationRunner(engine).downgrade(target_revision)
    finally:
        await engine.dispose()


async def get_migration_status(db_url: str) -> dict[str, Any]:
    """Describe the applied and pending revisions of the database at db_url."""
    engine = create_async_engine(db_url)
    try:
        return await MigrationRunner(engine).status()
    finally:
        await engine.dispose()
