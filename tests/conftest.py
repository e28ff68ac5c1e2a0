import random
import string
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest

from app.helpers.config_models.database import MemoryModel, SqliteModel
from app.models.reminder import (
    DailyRecurrenceModel,
    DayOfWeekRecurrenceModel,
    IntervalRecurrenceModel,
    RecurrenceDayEnum,
    ReminderModel,
)
from app.persistence.istore import IStore
from app.persistence.memory import MemoryStore
from app.persistence.sqlite import SqliteStore


@pytest.fixture(
    params=[
        pytest.param("memory", id="memory"),
        pytest.param("sqlite", id="sqlite"),
    ],
)
def store(request: pytest.FixtureRequest, tmp_path: Path) -> IStore:
    """
    Empty record store, each backend in turn.
    """
    if request.param == "sqlite":
        return SqliteStore(SqliteModel(path=str(tmp_path / "reminders")))
    return MemoryStore(MemoryModel())


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore(MemoryModel())


@pytest.fixture
def random_text() -> str:
    text = "".join(random.choice(string.ascii_letters) for _ in range(16))
    return text


@pytest.fixture
def owner_id(random_text: str) -> str:
    return f"user-{random_text}"


@pytest.fixture
def make_reminder(owner_id: str) -> Callable[..., ReminderModel]:
    """
    Build reminders with a chosen anchor.

    Defaults to a daily reminder of the test owner.
    """

    def _make(
        created_at: datetime = datetime(2024, 1, 10, 9, 30, tzinfo=UTC),
        description: str = "Take medication",
        interval_days: int | None = None,
        day: RecurrenceDayEnum | None = None,
        owner: str | None = None,
        recurrence_time: str = "08:00",
    ) -> ReminderModel:
        if interval_days:
            recurrence = IntervalRecurrenceModel(days=interval_days)
        elif day:
            recurrence = DayOfWeekRecurrenceModel(day=day)
        else:
            recurrence = DailyRecurrenceModel()
        return ReminderModel(
            created_at=created_at,
            description=description,
            owner_id=owner or owner_id,
            recurrence=recurrence,
            recurrence_time=recurrence_time,
        )

    return _make
