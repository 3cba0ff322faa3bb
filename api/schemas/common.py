"""
Common Pydantic schemas used across the API.

This module contains shared schemas for errors, health checks and the
grid snapshot payload every endpoint accepts.
"""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime

from api.config import settings
from backend.models.grid import GridSnapshot

# JSON form of a CellValue
CellValueType = Optional[Union[int, float, str]]


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str = Field(..., description="Error message")
    detail: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")
    path: Optional[str] = Field(None, description="Request path that caused the error")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Resource not found",
                "detail": {"path": "/api/unknown"},
                "timestamp": "2025-10-15T12:00:00Z",
                "path": "/api/unknown"
            }
        }


class GridPayload(BaseModel):
    """Grid snapshot: ordered column names plus ordered rows."""

    columns: List[str] = Field(..., description="Column names in display order (A, B, C, ...)")
    rows: List[Dict[str, CellValueType]] = Field(
        default_factory=list,
        description="Rows top to bottom; each maps column name to value"
    )

    @field_validator('columns')
    @classmethod
    def columns_unique(cls, columns: List[str]) -> List[str]:
        seen = set()
        duplicates = []
        for name in columns:
            if name in seen and name not in duplicates:
                duplicates.append(name)
            seen.add(name)
        if duplicates:
            raise ValueError(f"Duplicate column names: {', '.join(duplicates)}")
        return columns

    @model_validator(mode='after')
    def grid_within_limit(self) -> 'GridPayload':
        cells = len(self.columns) * len(self.rows)
        if cells > settings.MAX_GRID_CELLS:
            raise ValueError(
                f"Grid has {cells} cells; maximum is {settings.MAX_GRID_CELLS}"
            )
        return self

    def to_snapshot(self) -> GridSnapshot:
        return GridSnapshot.from_records(self.columns, self.rows)

    @classmethod
    def from_snapshot(cls, snapshot: GridSnapshot) -> 'GridPayload':
        return cls(**snapshot.to_records())

    class Config:
        json_schema_extra = {
            "example": {
                "columns": ["Item", "Q1", "Q2", "Total"],
                "rows": [
                    {"Item": "Rent", "Q1": 1200, "Q2": "$1,250", "Total": "=SUM(B1:C1)"},
                    {"Item": "Power", "Q1": 80, "Q2": 95, "Total": "=B2+C2"}
                ]
            }
        }


class HealthCheckResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Health check timestamp")
    version: str = Field(..., description="API version")
    evaluator: str = Field(..., description="Formula evaluator self-check status")
    circular_reference_mode: str = Field(..., description="How revisited references resolve")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2025-10-15T12:00:00Z",
                "version": "1.0.0",
                "evaluator": "ok",
                "circular_reference_mode": "zero"
            }
        }
