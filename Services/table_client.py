import logging
from typing import List, Optional

from Models.tables import Table, TableStatus
from Services.api_client import ApiClient
from Services.errors import UnrecognizedResponseError

logger = logging.getLogger(__name__)


class TableClient:
    def __init__(self, api: Optional[ApiClient] = None):
        self.api = api or ApiClient()

    async def list_tables(self) -> List[Table]:
        body = await self.api.get("/tables")
        metadata = body.get("metadata")
        if not isinstance(metadata, list):
            raise UnrecognizedResponseError("Formato de lista de mesas não reconhecido", body)
        return [Table.model_validate(item) for item in metadata]

    async def change_status(self, table_id: str, status: TableStatus) -> None:
        await self.api.patch(f"/tables/change-status/{table_id}", json={"status": status.value})
        logger.info(f"Mesa {table_id} alterada para {status.value}")
