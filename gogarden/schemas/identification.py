from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class IdentificationHistoryEntry(BaseModel):
    id: str
    date: datetime
    plant_name: str = "Unknown"
    scientific_name: str = ""
    confidence: float = Field(default=0, ge=0, le=100)
    image_uri: Optional[str] = None
    matched_in_database: bool = False


class IdentificationHistoryCreate(BaseModel):
    plant_name: Optional[str] = None
    scientific_name: Optional[str] = None
    confidence: float = Field(default=0, ge=0, le=100)
    image_uri: Optional[str] = None
    matched_in_database: bool = False


class IdentificationHistoryList(BaseModel):
    items: list[IdentificationHistoryEntry]
    total: int
