from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

FIELD_TYPES = ("string", "number", "boolean", "date", "object", "array")


class FieldDescriptor(BaseModel):
    model_config = ConfigDict(extra="allow")

    key: str = Field(min_length=1)
    label: Optional[str] = None
    type: str = "string"

    @field_validator("type")
    @classmethod
    def _known_type(cls, v: str) -> str:
        if v not in FIELD_TYPES:
            raise ValueError(f"type must be one of: {', '.join(FIELD_TYPES)}")
        return v


class ViewSpec(BaseModel):
    viewName: str = Field(min_length=1)
    viewDBName: str = Field(min_length=1)
    sourceCollection: str = Field(min_length=1)
    pipeline: List[Dict[str, Any]]


class ReportSpec(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    fields: List[FieldDescriptor] = Field(min_length=1)
    filters: List[Any] = Field(default_factory=list)
    searchable: List[str] = Field(default_factory=list)
    isCrossDB: bool = False


class CreateReportRequest(BaseModel):
    view: ViewSpec
    report: ReportSpec


class ExportRequest(BaseModel):
    filter: Optional[Dict[str, Any]] = None


class MarkViewedRequest(BaseModel):
    retentionDays: int = Field(default=7, ge=1, le=365)
