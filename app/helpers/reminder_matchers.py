"""
Recurrence matchers.

Each matcher owns one recurrence type. It turns a search predicate and a query window into a store filter, then narrows the candidates in process when the store cannot express the recurrence semantics.
"""

from datetime import UTC, date, datetime, timedelta, tzinfo

from pydantic import BaseModel

from app.helpers.logging import logger
from app.helpers.monitoring import SpanAttributeEnum, start_as_current_span
from app.helpers.time_utils import end_of_day_utc, to_utc
from app.models.reminder import (
    IntervalRecurrenceModel,
    RecurrenceDayEnum,
    RecurrenceTypeEnum,
    ReminderFilterModel,
    ReminderModel,
    ReminderSearchModel,
)
from app.persistence.istore import IStore


class QueryWindowModel(BaseModel, frozen=True):
    """
    Queried date range, as local calendar days and as UTC bounds.

    Any bound can be missing, the window is then open on that side.
    """

    end: datetime | None = None
    """Last millisecond of `end_date`, in UTC."""
    end_date: date | None = None
    start: datetime | None = None
    """Midnight of `start_date`, in UTC."""
    start_date: date | None = None

    @classmethod
    def from_dates(
        cls,
        start_date: date | None,
        end_date: date | None,
        tz: tzinfo = UTC,
    ) -> "QueryWindowModel":
        return cls(
            end=end_of_day_utc(end_date, tz) if end_date else None,
            end_date=end_date,
            start=to_utc(start_date, tz) if start_date else None,
            start_date=start_date,
        )


def build_search(term: str | None) -> ReminderSearchModel | None:
    """
    Build the search predicate shared by all matchers.

    Empty or blank terms match everything, returned as `None`. Other terms are used as given, spaces included.
    """
    if not term or not term.strip():
        return None
    return ReminderSearchModel(term=term)


@start_as_current_span("reminder_matcher_daily")
async def daily_reminders(
    store: IStore,
    owner_id: str,
    search: ReminderSearchModel | None,
    window: QueryWindowModel,
) -> list[ReminderModel]:
    """
    Daily reminders with an occurrence in the window.

    A daily reminder occurs every day from its anchor, so it is in range as soon as it started before the end of the window. Start of the window never excludes it.
    """
    SpanAttributeEnum.REMINDER_RECURRENCE_TYPE.attribute(RecurrenceTypeEnum.DAILY.value)
    return await store.reminder_search_all(
        ReminderFilterModel(
            created_before=window.end,
            owner_id=owner_id,
            recurrence_type=RecurrenceTypeEnum.DAILY,
            search=search,
        )
    )


@start_as_current_span("reminder_matcher_interval")
async def interval_reminders(
    store: IStore,
    owner_id: str,
    search: ReminderSearchModel | None,
    window: QueryWindowModel,
) -> list[ReminderModel]:
    """
    Interval reminders with an occurrence in the window.

    Store returns those started before the end of the window, then each candidate is tested on its first occurrence at or after the start.
    """
    SpanAttributeEnum.REMINDER_RECURRENCE_TYPE.attribute(
        RecurrenceTypeEnum.INTERVAL.value
    )
    candidates = await store.reminder_search_all(
        ReminderFilterModel(
            created_before=window.end,
            interval_defined=True,
            owner_id=owner_id,
            recurrence_type=RecurrenceTypeEnum.INTERVAL,
            search=search,
        )
    )

    # Without both bounds, the store filter is the answer
    if not window.start or not window.end:
        return candidates

    start, end = window.start, window.end
    res = [
        reminder
        for reminder in candidates
        if isinstance(reminder.recurrence, IntervalRecurrenceModel)
        and is_interval_in_range(
            anchor=reminder.created_at,
            days=reminder.recurrence.days,
            end=end,
            start=start,
        )
    ]
    logger.debug(
        "Kept %s interval reminders out of %s candidates", len(res), len(candidates)
    )
    return res


def is_interval_in_range(
    anchor: datetime,
    days: int,
    start: datetime,
    end: datetime,
) -> bool:
    """
    Test if an interval recurrence has an occurrence in `[start, end]`, both inclusive.

    Occurrences are `anchor + k * days` for all `k >= 0`. Only the first occurrence at or after `start` is tested: occurrences are evenly spaced, if that one misses the window all the following ones do too.
    """
    delta = start - anchor

    # Window starts before the anchor, the anchor is the first occurrence
    if delta < timedelta(0):
        return start <= anchor <= end

    # Integer ceiling of delta / interval, timedelta floor division is exact
    interval = timedelta(days=days)
    occurrences_passed = -(-delta // interval)
    next_occurrence = anchor + occurrences_passed * interval

    return start <= next_occurrence <= end


@start_as_current_span("reminder_matcher_day_of_week")
async def day_of_week_reminders(
    store: IStore,
    owner_id: str,
    search: ReminderSearchModel | None,
    window: QueryWindowModel,
) -> list[ReminderModel]:
    """
    Day-of-week reminders whose day appears in the window.

    Membership is tested at the weekday level only: a reminder matches if its day is anywhere in the window, even when that date precedes its anchor.
    """
    SpanAttributeEnum.REMINDER_RECURRENCE_TYPE.attribute(
        RecurrenceTypeEnum.DAY_OF_WEEK.value
    )
    return await store.reminder_search_all(
        ReminderFilterModel(
            created_before=window.end,
            days=weekdays_between(window.start_date, window.end_date),
            owner_id=owner_id,
            recurrence_type=RecurrenceTypeEnum.DAY_OF_WEEK,
            search=search,
        )
    )


def weekdays_between(
    start_date: date | None,
    end_date: date | None,
) -> frozenset[RecurrenceDayEnum]:
    """
    Distinct weekdays of the calendar days from `start_date` to `end_date`, both inclusive.

    An open window covers all the week. Enumeration stops as soon as the seven days are seen.
    """
    if not start_date or not end_date:
        return frozenset(RecurrenceDayEnum)

    days: set[RecurrenceDayEnum] = set()
    day = start_date
    while day <= end_date and len(days) < len(RecurrenceDayEnum):
        days.add(RecurrenceDayEnum.from_date(day))
        day += timedelta(days=1)
    return frozenset(days)
