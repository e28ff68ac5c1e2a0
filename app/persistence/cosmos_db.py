from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID, uuid4

from azure.cosmos import ConsistencyLevel
from azure.cosmos.aio import ContainerProxy, CosmosClient
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError
from pydantic import ValidationError

from app.helpers.cache import lru_acache
from app.helpers.config_models.database import CosmosDbModel
from app.helpers.http import azure_transport
from app.helpers.identity import credential
from app.helpers.logging import logger
from app.helpers.monitoring import suppress
from app.helpers.time_utils import to_iso
from app.models.readiness import ReadinessEnum
from app.models.reminder import ReminderFilterModel, ReminderModel
from app.persistence.istore import IStore


class CosmosDbStore(IStore):
    """
    Azure Cosmos DB store.

    Container must be partitioned on `/owner_id`, all reads are single partition.
    """

    _config: CosmosDbModel

    def __init__(self, config: CosmosDbModel):
        logger.info("Using Cosmos DB %s/%s", config.database, config.container)
        self._config = config

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the Cosmos DB service.

        This will validate the ACID properties of the database: Create, Read, Update, Delete.
        """
        test_id = str(uuid4())
        test_partition = "readiness"
        test_dict = {
            "id": test_id,  # unique id
            "owner_id": test_partition,  # partition key
            "test": "test",
        }
        try:
            # Test the item does not exist
            if await self._item_exists(test_id, test_partition):
                return ReadinessEnum.FAIL
            async with self._use_client() as db:
                # Create a new item
                await db.upsert_item(body=test_dict)
                # Test the item is the same
                read_item = await db.read_item(
                    item=test_id, partition_key=test_partition
                )
                assert (
                    {k: v for k, v in read_item.items() if k in test_dict} == test_dict
                )  # Check only the relevant fields, Cosmos DB adds metadata
                # Delete the item
                await db.delete_item(item=test_id, partition_key=test_partition)
            # Test the item does not exist
            if await self._item_exists(test_id, test_partition):
                return ReadinessEnum.FAIL
            return ReadinessEnum.OK
        except AssertionError:
            logger.exception("Readiness test failed")
        except CosmosHttpResponseError:
            logger.exception("Error requesting CosmosDB")
        except Exception:
            logger.exception("Unknown error while checking Cosmos DB readiness")
        return ReadinessEnum.FAIL

    async def _item_exists(self, test_id: str, partition_key: str) -> bool:
        exist = False
        async with self._use_client() as db:
            with suppress(CosmosResourceNotFoundError):
                await db.read_item(item=test_id, partition_key=partition_key)
                exist = True
        return exist

    async def reminder_create(
        self,
        reminder: ReminderModel,
    ) -> ReminderModel:
        logger.debug("Creating new reminder %s", reminder.reminder_id)
        async with self._use_client() as db:
            await db.create_item(body=self._serialize(reminder))
        return reminder

    async def reminder_get(
        self,
        owner_id: str,
        reminder_id: UUID,
    ) -> ReminderModel | None:
        logger.debug("Loading reminder %s", reminder_id)
        raw = None
        async with self._use_client() as db:
            with suppress(CosmosResourceNotFoundError):
                raw = await db.read_item(
                    item=str(reminder_id),
                    partition_key=owner_id,
                )
        if not raw:
            return None
        return self._parse(raw)

    async def reminder_update(
        self,
        reminder: ReminderModel,
    ) -> ReminderModel | None:
        logger.debug("Updating reminder %s", reminder.reminder_id)
        try:
            async with self._use_client() as db:
                await db.replace_item(
                    body=self._serialize(reminder),
                    item=str(reminder.reminder_id),
                )
        except CosmosResourceNotFoundError:
            return None
        return reminder

    async def reminder_delete(
        self,
        owner_id: str,
        reminder_id: UUID,
    ) -> bool:
        logger.debug("Deleting reminder %s", reminder_id)
        try:
            async with self._use_client() as db:
                await db.delete_item(
                    item=str(reminder_id),
                    partition_key=owner_id,
                )
        except CosmosResourceNotFoundError:
            return False
        return True

    async def reminder_search_all(
        self,
        query: ReminderFilterModel,
    ) -> list[ReminderModel]:
        logger.debug("Searching %s reminders", query.recurrence_type.value)
        where_clause, parameters = self._where_clause(query)
        reminders: list[ReminderModel] = []
        async with self._use_client() as db:
            items = db.query_items(
                parameters=parameters,
                partition_key=query.owner_id,
                query=f"SELECT * FROM c WHERE {where_clause}",
            )
            async for raw in items:
                if not raw:
                    continue
                reminder = self._parse(raw)
                if reminder:
                    reminders.append(reminder)
        return reminders

    @staticmethod
    def _where_clause(
        query: ReminderFilterModel,
    ) -> tuple[str, list[dict[str, Any]]]:
        """
        Translate a filter into a Cosmos DB SQL condition and its named parameters.

        See: https://learn.microsoft.com/en-us/azure/cosmos-db/nosql/query/where
        """
        clauses = [
            "c.owner_id = @owner_id",
            "c.recurrence.type = @recurrence_type",
        ]
        parameters: list[dict[str, Any]] = [
            {"name": "@owner_id", "value": query.owner_id},
            {"name": "@recurrence_type", "value": query.recurrence_type.value},
        ]

        if query.interval_defined:
            clauses.append("IS_DEFINED(c.recurrence.days)")

        if query.days is not None:
            clauses.append("ARRAY_CONTAINS(@days, c.recurrence.day)")
            parameters.append(
                {"name": "@days", "value": sorted(day.value for day in query.days)}
            )

        if query.created_before:
            clauses.append("c.created_at <= @created_before")
            parameters.append(
                {"name": "@created_before", "value": to_iso(query.created_before)}
            )

        if query.search:
            # Third argument of CONTAINS enables case-insensitive matching
            clauses.append(
                "(CONTAINS(c.description, @search, true) OR CONTAINS(c.recurrence.type, @search, true) OR CONTAINS(c.recurrence.day, @search, true))"
            )
            parameters.append({"name": "@search", "value": query.search.term})

        return " AND ".join(clauses), parameters

    @staticmethod
    def _serialize(reminder: ReminderModel) -> dict[str, Any]:
        data = reminder.model_dump(mode="json", exclude_none=True)
        data["id"] = str(reminder.reminder_id)  # CosmosDB requires an id field
        return data

    @staticmethod
    def _parse(raw: dict[str, Any]) -> ReminderModel | None:
        try:
            return ReminderModel.model_validate(raw)
        except ValidationError:
            logger.debug("Parsing error", exc_info=True)
        return None

    @lru_acache()
    async def _use_service_client(self) -> CosmosClient:
        """
        Generate the Cosmos DB client.
        """
        logger.debug("Using Cosmos DB service client for %s", self._config.endpoint)

        return CosmosClient(
            # Usage
            consistency_level=ConsistencyLevel.Session,
            # Reliability
            connection_timeout=10,  # 10 secs
            retry_backoff_factor=0.8,
            retry_backoff_max=8,
            retry_total=3,
            # Performance
            transport=await azure_transport(),
            # Deployment
            url=self._config.endpoint,
            # Authentication
            credential=await credential(),
        )

    @asynccontextmanager
    async def _use_client(self) -> AsyncGenerator[ContainerProxy]:
        """
        Generate the container client.
        """
        async with await self._use_service_client() as client:
            database = client.get_database_client(self._config.database)
            yield database.get_container_client(self._config.container)
