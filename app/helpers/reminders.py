import asyncio
import time
from datetime import UTC, date, datetime, tzinfo
from uuid import UUID

from app.helpers.logging import logger
from app.helpers.monitoring import (
    SpanAttributeEnum,
    counter_add,
    gauge_set,
    reminder_list_latency,
    reminder_list_matches,
    start_as_current_span,
)
from app.helpers.reminder_matchers import (
    QueryWindowModel,
    build_search,
    daily_reminders,
    day_of_week_reminders,
    interval_reminders,
)
from app.models.reminder import ReminderCreateModel, ReminderModel
from app.persistence.istore import IStore


class InvalidRangeError(ValueError):
    pass


class MissingOwnerScopeError(Exception):
    pass


class ReminderNotFoundError(Exception):
    pass


@start_as_current_span("reminder_list")
async def list_reminders(  # noqa: PLR0913
    store: IStore,
    owner_id: str | None,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    tz: tzinfo = UTC,
) -> list[ReminderModel]:
    """
    List the owner's reminders with at least one occurrence in the window, matching the search.

    Each recurrence type is queried concurrently by its own matcher. Results are grouped by type, daily first, then interval, then day-of-week. Any matcher failure fails the whole listing.

    Parameters:
    - owner_id: Owner the reminders belong to
    - search: Case-insensitive text to find in the description, recurrence type or day
    - start_date: First local day of the window, inclusive
    - end_date: Last local day of the window, inclusive
    - tz: Zone the window days are expressed in
    """
    owner_id = _owner_scope(owner_id)

    # Validate window before any store query
    if start_date and end_date and start_date > end_date:
        raise InvalidRangeError(
            f"Invalid date range, start {start_date} is after end {end_date}"
        )

    if search:
        SpanAttributeEnum.QUERY_SEARCH.attribute(search)
    if start_date:
        SpanAttributeEnum.QUERY_START_DATE.attribute(start_date.isoformat())
    if end_date:
        SpanAttributeEnum.QUERY_END_DATE.attribute(end_date.isoformat())

    predicate = build_search(search)
    window = QueryWindowModel.from_dates(
        end_date=end_date,
        start_date=start_date,
        tz=tz,
    )
    logger.debug("Listing reminders between %s and %s", window.start, window.end)

    start = time.monotonic()
    daily, interval, day_of_week = await asyncio.gather(
        daily_reminders(store, owner_id, predicate, window),
        interval_reminders(store, owner_id, predicate, window),
        day_of_week_reminders(store, owner_id, predicate, window),
    )
    res = [*daily, *interval, *day_of_week]

    gauge_set(reminder_list_latency, time.monotonic() - start)
    counter_add(reminder_list_matches, len(res))
    logger.info(
        "Found %s reminders (%s daily, %s interval, %s day-of-week)",
        len(res),
        len(daily),
        len(interval),
        len(day_of_week),
    )
    return res


@start_as_current_span("reminder_create")
async def create_reminder(
    store: IStore,
    owner_id: str | None,
    reminder: ReminderCreateModel,
) -> ReminderModel:
    """
    Create a reminder for the owner, anchored now.
    """
    owner_id = _owner_scope(owner_id)
    new_reminder = ReminderModel(
        **reminder.model_dump(),
        owner_id=owner_id,
    )
    SpanAttributeEnum.REMINDER_ID.attribute(str(new_reminder.reminder_id))
    created = await store.reminder_create(new_reminder)
    logger.info("Created reminder")
    return created


@start_as_current_span("reminder_get")
async def get_reminder(
    store: IStore,
    owner_id: str | None,
    reminder_id: UUID,
) -> ReminderModel:
    owner_id = _owner_scope(owner_id)
    SpanAttributeEnum.REMINDER_ID.attribute(str(reminder_id))
    reminder = await store.reminder_get(owner_id, reminder_id)
    if not reminder:
        raise ReminderNotFoundError(f"Reminder {reminder_id} not found")
    return reminder


@start_as_current_span("reminder_update")
async def update_reminder(
    store: IStore,
    owner_id: str | None,
    reminder_id: UUID,
    reminder: ReminderCreateModel,
) -> ReminderModel:
    """
    Replace the editable content of a reminder.

    Anchor, owner and ID are kept. Changing the recurrence moves the reminder to another matcher from now on.
    """
    current = await get_reminder(store, owner_id, reminder_id)
    updated = ReminderModel.model_validate(
        {
            **current.model_dump(),
            **reminder.model_dump(),
            "updated_at": datetime.now(UTC),
        }
    )
    res = await store.reminder_update(updated)
    if not res:
        # Deleted between the read and the write
        raise ReminderNotFoundError(f"Reminder {reminder_id} not found")
    logger.info("Updated reminder")
    return res


@start_as_current_span("reminder_delete")
async def delete_reminder(
    store: IStore,
    owner_id: str | None,
    reminder_id: UUID,
) -> None:
    owner_id = _owner_scope(owner_id)
    SpanAttributeEnum.REMINDER_ID.attribute(str(reminder_id))
    if not await store.reminder_delete(owner_id, reminder_id):
        raise ReminderNotFoundError(f"Reminder {reminder_id} not found")
    logger.info("Deleted reminder")


def _owner_scope(owner_id: str | None) -> str:
    """
    Validate the owner identity and bind it to the logs and span.
    """
    if not owner_id:
        raise MissingOwnerScopeError("Owner ID is required to access reminders")
    SpanAttributeEnum.REMINDER_OWNER_ID.attribute(owner_id)
    return owner_id
