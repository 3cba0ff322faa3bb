"""
Fill-down Pydantic schemas.

This module contains schemas for pattern detection, value generation and
assistant prompt building.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from api.config import settings
from api.schemas.common import CellValueType, GridPayload
from services.pattern_service import FillPattern


class PatternResponse(BaseModel):
    """A detected fill pattern."""

    kind: str = Field(..., description="Pattern kind, e.g. arithmetic, weekday, formula")
    confidence: int = Field(..., ge=0, le=100, description="Confidence score 0-100")
    description: str = Field(..., description="Human-readable summary")
    increment: Optional[float] = Field(None, description="Common difference or ratio")
    formula: Optional[str] = Field(None, description="Seed formula for formula patterns")
    prefix: Optional[str] = Field(None, description="Text prefix for numbered text")
    step: Optional[int] = Field(None, description="Step for numbered text")
    usable: bool = Field(..., description="Whether the generator follows this pattern")

    @classmethod
    def from_pattern(cls, pattern: FillPattern) -> 'PatternResponse':
        return cls(
            **pattern.to_dict(),
            usable=pattern.is_usable(settings.MIN_PATTERN_CONFIDENCE)
        )

    class Config:
        json_schema_extra = {
            "example": {
                "kind": "arithmetic",
                "confidence": 95,
                "description": "Numeric sequence (+1.00)",
                "increment": 1,
                "formula": None,
                "prefix": None,
                "step": None,
                "usable": True
            }
        }


class DetectRequest(BaseModel):
    """Values already entered in a column, most recent last."""

    values: List[CellValueType] = Field(..., description="Existing column values")


class DetectResponse(BaseModel):
    """Detected pattern, or null when there are no values."""

    pattern: Optional[PatternResponse] = Field(None, description="Detected pattern")


class GenerateRequest(BaseModel):
    """Fill-down request."""

    values: List[CellValueType] = Field(..., description="Existing column values, most recent last")
    count: int = Field(..., ge=0, description="Number of values to generate")
    origin_offset: int = Field(
        0, ge=0,
        description="Zero-based row index of the last existing value (shifts formula references)"
    )

    @field_validator('count')
    @classmethod
    def count_within_limit(cls, count: int) -> int:
        if count > settings.MAX_FILL_COUNT:
            raise ValueError(f"count may not exceed {settings.MAX_FILL_COUNT}")
        return count

    class Config:
        json_schema_extra = {
            "example": {"values": ["Monday", "Tuesday"], "count": 2, "origin_offset": 1}
        }


class GenerateResponse(BaseModel):
    """Generated values and the pattern that produced them."""

    values: List[CellValueType] = Field(..., description="New values, in order")
    pattern: Optional[PatternResponse] = Field(None, description="Pattern followed")


class FillPromptRequest(BaseModel):
    """Assistant prompt request for a fill-down."""

    values: List[CellValueType] = Field(..., description="Recent column values")
    column_name: str = Field(..., min_length=1, description="Column being filled")
    grid: GridPayload = Field(..., description="Grid the column belongs to")


class FillPromptResponse(BaseModel):
    """Rendered prompt."""

    prompt: str = Field(..., description="Prompt text")
    pattern: Optional[PatternResponse] = Field(None, description="Pattern described in the prompt")
