from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from views.schemas.integration import CamelModel


class RetrievalOptions(CamelModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: Optional[int] = Field(default=None, ge=1)
    offset: Optional[int] = Field(default=None, ge=0)
    filters: Dict[str, Any] = {}


class RetrievalMetadata(CamelModel):
    total_count: int
    retrieved_at: datetime
    integration_id: str
    credentials: Dict[str, Any] = {}
    synthetic: bool = False


class RetrievedData(CamelModel):
    source: str
    data_type: str
    records: List[Dict[str, Any]]
    metadata: RetrievalMetadata


class DateRange(CamelModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class RetrieveRequest(CamelModel):
    org_id: str
    integration_id: Optional[str] = None
    integration_source: Optional[str] = None
    retrieve_from_all: bool = False
    data_types: Optional[List[str]] = None
    date_range: Optional[DateRange] = None
    limit: Optional[int] = Field(default=None, ge=1)
    filters: Dict[str, Any] = {}

    @field_validator("org_id")
    @classmethod
    def org_id_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Organization ID required")
        return v

    def to_options(self) -> RetrievalOptions:
        date_range = self.date_range or DateRange()
        return RetrievalOptions(
            start_date=date_range.start,
            end_date=date_range.end,
            limit=self.limit,
            filters=self.filters,
        )


class RetrieveSummary(CamelModel):
    total_sources: int
    total_records: int
    retrieved_at: datetime


class RetrieveResponse(CamelModel):
    success: bool = True
    data: List[RetrievedData]
    summary: RetrieveSummary


class DataImportMetadata(CamelModel):
    source: str
    data_type: str
    retrieved_at: datetime
    total_count: int
    integration_id: str


class DataImport(CamelModel):
    """Persisted snapshot of one RetrievedData envelope"""

    id: str
    org_id: str
    file_type: str = "json"
    data: List[Dict[str, Any]]
    metadata: DataImportMetadata
    created_by: Optional[str] = None
    created_at: datetime


class SaveRetrievedRequest(CamelModel):
    org_id: str
    data: RetrievedData
