# notifier/infra/table_client.py
import logging
from typing import List, Optional

from azure.core.exceptions import AzureError
from azure.data.tables import UpdateMode
from azure.data.tables.aio import TableClient, TableServiceClient

from notifier.errors import StoreError
from notifier.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationStore:
    """
    Notification records in Azure Table Storage.
    PartitionKey = userId, RowKey = notification id.
    """

    def __init__(self, conn_str: Optional[str], table_name: str = "notifications"):
        self._conn_str = conn_str
        self._table_name = table_name
        self._service: Optional[TableServiceClient] = None
        self._table: Optional[TableClient] = None

    async def open(self) -> None:
        if not self._conn_str:
            raise StoreError("AZURE_STORAGE_CONNECTION_STRING is not configured")
        self._service = TableServiceClient.from_connection_string(conn_str=self._conn_str)
        try:
            self._table = await self._service.create_table_if_not_exists(table_name=self._table_name)
        except AzureError as e:
            raise StoreError(f"Could not open table {self._table_name}: {e}") from e

    async def close(self) -> None:
        if self._service is not None:
            await self._service.close()
        self._service = None
        self._table = None

    def _client(self) -> TableClient:
        if self._table is None:
            raise StoreError("Notification store is not open")
        return self._table

    async def create(self, notification: Notification) -> Notification:
        try:
            await self._client().create_entity(entity=notification.to_entity())
        except AzureError as e:
            raise StoreError(f"Could not create notification for user {notification.userId}: {e}") from e
        return notification

    async def update(self, notification: Notification) -> Notification:
        # MERGE so columns written by other tools (read tracking) survive
        try:
            await self._client().update_entity(entity=notification.to_entity(), mode=UpdateMode.MERGE)
        except AzureError as e:
            raise StoreError(f"Could not update notification {notification.id}: {e}") from e
        return notification

    async def list_pending_recommendation_emails(self, limit: int = 10) -> List[Notification]:
        entities = self._client().query_entities(
            query_filter="type eq @type and emailSent eq false",
            parameters={"type": NotificationType.RECOMMENDATION.value},
        )
        pending: List[Notification] = []
        try:
            async for entity in entities:
                pending.append(Notification.from_entity(entity))
                if len(pending) >= limit:
                    break
        except AzureError as e:
            raise StoreError(f"Could not query pending recommendation emails: {e}") from e
        return pending
