import asyncio
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from aiosqlite import Connection, connect as sqlite_connect
from opentelemetry.instrumentation.sqlite3 import SQLite3Instrumentor
from pydantic import ValidationError

from app.helpers.config_models.database import SqliteModel
from app.helpers.logging import logger
from app.helpers.time_utils import to_iso
from app.models.readiness import ReadinessEnum
from app.models.reminder import ReminderFilterModel, ReminderModel
from app.persistence.istore import IStore

# Instrument sqlite
SQLite3Instrumentor().instrument()


class SqliteStore(IStore):
    """
    SQLite store, one JSON document per reminder.

    Queried fields are read with `JSON_EXTRACT` and indexed. Timestamps are fixed width ISO strings, so text comparison follows time order.
    """

    _config: SqliteModel
    _db_path: str
    _init_done: bool
    _init_lock: asyncio.Lock

    def __init__(self, config: SqliteModel):
        logger.info(
            "Using SQLite database at %s with table %s", config.path, config.table
        )
        self._config = config
        self._db_path = self._config.full_path()
        self._init_done = False
        self._init_lock = asyncio.Lock()

        # Create folder if does not exist
        db_folder = os.path.dirname(os.path.abspath(self._db_path))
        os.makedirs(name=db_folder, exist_ok=True)

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the SQLite database.

        This checks if the database is reachable and can be queried.
        """
        try:
            async with self._use_db() as db:
                await db.execute("SELECT 1")
            return ReadinessEnum.OK
        except Exception:
            logger.exception("Unknown error while checking SQLite readiness")
        return ReadinessEnum.FAIL

    async def reminder_create(
        self,
        reminder: ReminderModel,
    ) -> ReminderModel:
        logger.debug("Creating new reminder %s", reminder.reminder_id)
        async with self._use_db() as db:
            await db.execute(
                f"INSERT INTO {self._config.table} (id, data) VALUES (?, ?)",
                (
                    str(reminder.reminder_id),  # id
                    reminder.model_dump_json(),  # data
                ),
            )
            await db.commit()
        return reminder

    async def reminder_get(
        self,
        owner_id: str,
        reminder_id: UUID,
    ) -> ReminderModel | None:
        logger.debug("Loading reminder %s", reminder_id)
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT data FROM {self._config.table} WHERE id = ? AND JSON_EXTRACT(data, '$.owner_id') = ?",
                (
                    str(reminder_id),  # id
                    owner_id,  # data.owner_id
                ),
            )
            row = await cursor.fetchone()
        if not row:
            return None
        return self._parse(row[0])

    async def reminder_update(
        self,
        reminder: ReminderModel,
    ) -> ReminderModel | None:
        logger.debug("Updating reminder %s", reminder.reminder_id)
        async with self._use_db() as db:
            cursor = await db.execute(
                f"UPDATE {self._config.table} SET data = ? WHERE id = ? AND JSON_EXTRACT(data, '$.owner_id') = ?",
                (
                    reminder.model_dump_json(),  # data
                    str(reminder.reminder_id),  # id
                    reminder.owner_id,  # data.owner_id
                ),
            )
            await db.commit()
        if not cursor.rowcount:
            return None
        return reminder

    async def reminder_delete(
        self,
        owner_id: str,
        reminder_id: UUID,
    ) -> bool:
        logger.debug("Deleting reminder %s", reminder_id)
        async with self._use_db() as db:
            cursor = await db.execute(
                f"DELETE FROM {self._config.table} WHERE id = ? AND JSON_EXTRACT(data, '$.owner_id') = ?",
                (
                    str(reminder_id),  # id
                    owner_id,  # data.owner_id
                ),
            )
            await db.commit()
        return cursor.rowcount > 0

    async def reminder_search_all(
        self,
        query: ReminderFilterModel,
    ) -> list[ReminderModel]:
        logger.debug("Searching %s reminders", query.recurrence_type.value)
        where_clause, parameters = self._where_clause(query)
        reminders: list[ReminderModel] = []
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT data FROM {self._config.table} WHERE {where_clause}",
                parameters,
            )
            rows = await cursor.fetchall()
        for row in rows:
            if not row:
                continue
            reminder = self._parse(row[0])
            if reminder:
                reminders.append(reminder)
        return reminders

    @staticmethod
    def _where_clause(query: ReminderFilterModel) -> tuple[str, list[Any]]:
        """
        Translate a filter into a SQL condition and its positional parameters.
        """
        clauses = [
            "JSON_EXTRACT(data, '$.owner_id') = ?",
            "JSON_EXTRACT(data, '$.recurrence.type') = ?",
        ]
        parameters: list[Any] = [
            query.owner_id,
            query.recurrence_type.value,
        ]

        if query.interval_defined:
            clauses.append("JSON_EXTRACT(data, '$.recurrence.days') IS NOT NULL")

        if query.days is not None:
            # Empty set matches nothing, "IN ()" is valid SQLite
            placeholders = ", ".join("?" for _ in query.days)
            clauses.append(f"JSON_EXTRACT(data, '$.recurrence.day') IN ({placeholders})")
            parameters.extend(sorted(day.value for day in query.days))

        if query.created_before:
            clauses.append("JSON_EXTRACT(data, '$.created_at') <= ?")
            parameters.append(to_iso(query.created_before))

        if query.search:
            # INSTR is a plain substring test, search terms are never interpreted as patterns
            # LOWER only folds ASCII, CASEFOLD is registered on each connection
            fields = ("$.description", "$.recurrence.type", "$.recurrence.day")
            clauses.append(
                "("
                + " OR ".join(
                    f"INSTR(CASEFOLD(JSON_EXTRACT(data, '{field}')), ?) > 0"
                    for field in fields
                )
                + ")"
            )
            parameters.extend(query.search.term.casefold() for _ in fields)

        return " AND ".join(clauses), parameters

    @staticmethod
    def _parse(raw: str) -> ReminderModel | None:
        try:
            return ReminderModel.model_validate_json(raw)
        except ValidationError:
            logger.debug("Parsing error", exc_info=True)
        return None

    async def _init_db(self, db: Connection) -> None:
        """
        Initialize the database.

        See: https://sqlite.org/cgi/src/doc/wal2/doc/wal2.md
        """
        logger.info("First run, init database")
        # Optimize performance for concurrent writes
        await db.execute("PRAGMA journal_mode=WAL")
        # Create table
        await db.execute(
            f"CREATE TABLE IF NOT EXISTS {self._config.table} (id VARCHAR(36) PRIMARY KEY, data TEXT)"
        )
        # Create indexes
        await db.execute(
            f"CREATE INDEX IF NOT EXISTS {self._config.table}_data_owner_id_recurrence_type ON {self._config.table} (JSON_EXTRACT(data, '$.owner_id'), JSON_EXTRACT(data, '$.recurrence.type'))"
        )
        await db.execute(
            f"CREATE INDEX IF NOT EXISTS {self._config.table}_data_created_at ON {self._config.table} (JSON_EXTRACT(data, '$.created_at'))"
        )

        # Write changes to disk
        await db.commit()

    @asynccontextmanager
    async def _use_db(self) -> AsyncGenerator[Connection]:
        """
        Generate the SQLite client and close it after use.
        """
        async with sqlite_connect(
            database=self._db_path,
        ) as client:
            await client.create_function(
                "CASEFOLD",
                1,
                _casefold,
                deterministic=True,
            )
            if not self._init_done:
                async with self._init_lock:
                    if not self._init_done:
                        await self._init_db(client)
                        self._init_done = True
            yield client


def _casefold(value: Any) -> Any:
    """
    Unicode case folding for SQL, same as `str.casefold`. NULL and non-text values are returned as is.
    """
    if isinstance(value, str):
        return value.casefold()
    return value
