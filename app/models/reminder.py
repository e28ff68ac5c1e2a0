from datetime import UTC, date, datetime
from enum import Enum
from typing import Annotated, Literal
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    Field,
    PositiveInt,
    StringConstraints,
    field_serializer,
    field_validator,
)

from app.helpers.time_utils import ensure_utc, to_iso

# 24-hour clock, "HH:MM"
RECURRENCE_TIME_PATTERN = r"^([01]\d|2[0-3]):([0-5]\d)$"


class RecurrenceTypeEnum(str, Enum):
    DAILY = "DAILY"
    """Every calendar day, starting at creation."""
    DAY_OF_WEEK = "DAY_OF_THE_WEEK"
    """Every week, on a fixed day."""
    INTERVAL = "INTERVAL"
    """Every N days, starting at creation."""


class RecurrenceDayEnum(str, Enum):
    # Ordered as date.weekday(), Monday is 0
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def from_date(cls, day: date) -> "RecurrenceDayEnum":
        return list(cls)[day.weekday()]


class DailyRecurrenceModel(BaseModel, frozen=True):
    type: Literal[RecurrenceTypeEnum.DAILY] = RecurrenceTypeEnum.DAILY


class IntervalRecurrenceModel(BaseModel, frozen=True):
    type: Literal[RecurrenceTypeEnum.INTERVAL] = RecurrenceTypeEnum.INTERVAL
    days: PositiveInt


class DayOfWeekRecurrenceModel(BaseModel, frozen=True):
    type: Literal[RecurrenceTypeEnum.DAY_OF_WEEK] = RecurrenceTypeEnum.DAY_OF_WEEK
    day: RecurrenceDayEnum


RecurrenceModel = Annotated[
    DailyRecurrenceModel | IntervalRecurrenceModel | DayOfWeekRecurrenceModel,
    Field(discriminator="type"),
]

Description = Annotated[str, StringConstraints(min_length=1, strip_whitespace=True)]
RecurrenceTime = Annotated[str, StringConstraints(pattern=RECURRENCE_TIME_PATTERN)]


class ReminderCreateModel(BaseModel):
    """
    Editable content of a reminder, as sent by the owner.
    """

    description: Description
    recurrence: RecurrenceModel
    recurrence_time: RecurrenceTime


class ReminderModel(ReminderCreateModel):
    # Immutable fields
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), frozen=True)
    owner_id: str = Field(frozen=True, min_length=1)
    reminder_id: UUID = Field(default_factory=uuid4, frozen=True)
    # Editable fields
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("created_at", "updated_at")
    @classmethod
    def _validate_utc(cls, value: datetime) -> datetime:
        """
        Store all instants as UTC, anchors are compared with UTC query bounds.
        """
        return ensure_utc(value)

    @field_serializer("created_at", "updated_at", when_used="json")
    def _serialize_datetime(self, value: datetime) -> str:
        return to_iso(value)

    def search_fields(self) -> list[str]:
        """
        Texts a search term is matched against.

        Description, recurrence type name and recurrence day when there is one.
        """
        fields = [self.description, RecurrenceTypeEnum(self.recurrence.type).value]
        if isinstance(self.recurrence, DayOfWeekRecurrenceModel):
            fields.append(self.recurrence.day.value)
        return fields


class ReminderSearchModel(BaseModel, frozen=True):
    term: Annotated[str, StringConstraints(min_length=1)]

    def match(self, reminder: ReminderModel) -> bool:
        """
        Case-insensitive substring test, any searchable field matching is enough.
        """
        needle = self.term.casefold()
        return any(needle in field.casefold() for field in reminder.search_fields())


class ReminderFilterModel(BaseModel, frozen=True):
    """
    Structured store predicate, all set conditions must hold.

    Stores translate it to their query language. `match` is the reference semantics.
    """

    created_before: datetime | None = None
    """Inclusive upper bound on the anchor."""
    days: frozenset[RecurrenceDayEnum] | None = None
    """Allowed recurrence days, day-of-week reminders only."""
    interval_defined: bool = False
    """Require the interval length to exist."""
    owner_id: str = Field(min_length=1)
    recurrence_type: RecurrenceTypeEnum
    search: ReminderSearchModel | None = None

    def match(self, reminder: ReminderModel) -> bool:
        if reminder.owner_id != self.owner_id:
            return False
        if reminder.recurrence.type != self.recurrence_type:
            return False
        if self.interval_defined and not isinstance(
            reminder.recurrence, IntervalRecurrenceModel
        ):
            return False
        if self.days is not None and (
            not isinstance(reminder.recurrence, DayOfWeekRecurrenceModel)
            or reminder.recurrence.day not in self.days
        ):
            return False
        if self.created_before and reminder.created_at > self.created_before:
            return False
        if self.search and not self.search.match(reminder):
            return False
        return True
