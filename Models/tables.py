from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
import enum


class TableStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"


class Table(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    table_number: int = Field(alias="tableNumber")
    maximum_capacity: int = Field(default=0, alias="maximumCapacity")
    status: TableStatus = TableStatus.AVAILABLE
    position: str = ""
    reserved: bool = False
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
