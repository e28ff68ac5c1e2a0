from abc import ABC, abstractmethod
from uuid import UUID

from app.helpers.monitoring import start_as_current_span
from app.models.readiness import ReadinessEnum
from app.models.reminder import ReminderFilterModel, ReminderModel


class IStore(ABC):
    """
    Reminder record store.

    Reads and writes are always scoped to one owner. Query and write errors are raised to the caller, never swallowed.
    """

    @abstractmethod
    @start_as_current_span("store_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("store_reminder_create")
    async def reminder_create(
        self,
        reminder: ReminderModel,
    ) -> ReminderModel:
        pass

    @abstractmethod
    @start_as_current_span("store_reminder_get")
    async def reminder_get(
        self,
        owner_id: str,
        reminder_id: UUID,
    ) -> ReminderModel | None:
        pass

    @abstractmethod
    @start_as_current_span("store_reminder_update")
    async def reminder_update(
        self,
        reminder: ReminderModel,
    ) -> ReminderModel | None:
        """
        Replace a stored reminder, matched by owner and ID.

        Returns `None` if the reminder does not exist.
        """

    @abstractmethod
    @start_as_current_span("store_reminder_delete")
    async def reminder_delete(
        self,
        owner_id: str,
        reminder_id: UUID,
    ) -> bool:
        """
        Delete a reminder, matched by owner and ID.

        Returns `False` if the reminder does not exist.
        """

    @abstractmethod
    @start_as_current_span("store_reminder_search_all")
    async def reminder_search_all(
        self,
        query: ReminderFilterModel,
    ) -> list[ReminderModel]:
        """
        Return all reminders matching the filter, without pagination.
        """
