from uuid import UUID

from app.helpers.config_models.database import MemoryModel
from app.helpers.logging import logger
from app.models.readiness import ReadinessEnum
from app.models.reminder import ReminderFilterModel, ReminderModel
from app.persistence.istore import IStore


class MemoryStore(IStore):
    """
    A simple in-memory store.

    Records live in a dict keyed by reminder ID, filters are evaluated in process with `ReminderFilterModel.match`. Data is lost on restart, use it for tests and demos.
    """

    _config: MemoryModel
    _reminders: dict[UUID, ReminderModel]

    def __init__(self, config: MemoryModel):
        logger.warning(
            "Using memory store, data will be lost on restart, prefer a persistent database like SQLite or Cosmos DB"
        )
        self._config = config
        self._reminders = {}

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the memory store.
        """
        return ReadinessEnum.OK  # Always ready, it's memory :)

    async def reminder_create(
        self,
        reminder: ReminderModel,
    ) -> ReminderModel:
        logger.debug("Creating new reminder %s", reminder.reminder_id)
        if reminder.reminder_id in self._reminders:
            raise ValueError(f"Reminder {reminder.reminder_id} already exists")
        self._reminders[reminder.reminder_id] = reminder
        return reminder

    async def reminder_get(
        self,
        owner_id: str,
        reminder_id: UUID,
    ) -> ReminderModel | None:
        logger.debug("Loading reminder %s", reminder_id)
        reminder = self._reminders.get(reminder_id)
        # Never leak another owner's reminder
        if not reminder or reminder.owner_id != owner_id:
            return None
        return reminder

    async def reminder_update(
        self,
        reminder: ReminderModel,
    ) -> ReminderModel | None:
        logger.debug("Updating reminder %s", reminder.reminder_id)
        if not await self.reminder_get(reminder.owner_id, reminder.reminder_id):
            return None
        self._reminders[reminder.reminder_id] = reminder
        return reminder

    async def reminder_delete(
        self,
        owner_id: str,
        reminder_id: UUID,
    ) -> bool:
        logger.debug("Deleting reminder %s", reminder_id)
        if not await self.reminder_get(owner_id, reminder_id):
            return False
        del self._reminders[reminder_id]
        return True

    async def reminder_search_all(
        self,
        query: ReminderFilterModel,
    ) -> list[ReminderModel]:
        logger.debug("Searching %s reminders", query.recurrence_type.value)
        return [
            reminder for reminder in self._reminders.values() if query.match(reminder)
        ]
