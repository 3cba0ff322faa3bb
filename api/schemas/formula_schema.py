"""
Formula-related Pydantic schemas.

This module contains request/response schemas for formula evaluation,
dependency analysis and the formula catalog.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from api.schemas.common import CellValueType, GridPayload
from services.evaluation_service import FormulaResult


class EvaluateRequest(BaseModel):
    """Evaluate one cell's text against a grid."""

    formula: str = Field(..., description="Cell text, e.g. =SUM(B1:B3)")
    grid: GridPayload = Field(..., description="Grid snapshot references resolve against")
    cell: Optional[str] = Field(
        None,
        description="Address of the cell being evaluated (seeds the cycle guard)"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "formula": "=SUM(B1:B3)",
                "cell": "C1",
                "grid": {
                    "columns": ["Item", "Amount", "Total"],
                    "rows": [
                        {"Item": "a", "Amount": 10, "Total": "=SUM(B1:B3)"},
                        {"Item": "b", "Amount": 20, "Total": None},
                        {"Item": "c", "Amount": "30", "Total": None}
                    ]
                }
            }
        }


class EvaluationResult(BaseModel):
    """Display value of one evaluation, or the error that replaced it."""

    value: CellValueType = Field(None, description="Computed value")
    error: Optional[str] = Field(
        None,
        description="Error kind: InvalidReference, InvalidRange, UnknownFunction, "
                    "InvalidExpression, CalculationError, NoData, CircularReference"
    )
    message: Optional[str] = Field(None, description="Human-readable error detail")

    @classmethod
    def from_result(cls, result: FormulaResult) -> 'EvaluationResult':
        return cls(**result.to_dict())

    class Config:
        json_schema_extra = {
            "example": {"value": 60, "error": None, "message": None}
        }


class SheetRequest(BaseModel):
    """Request carrying only a grid."""

    grid: GridPayload = Field(..., description="Grid snapshot")


class SheetEvaluationResponse(BaseModel):
    """Display values for every formula cell of a grid."""

    cells: Dict[str, EvaluationResult] = Field(..., description="Result per cell address")
    formula_cells: int = Field(..., description="Number of formula cells evaluated")
    error_count: int = Field(..., description="Number of formula cells that failed")
    circular_references: List[List[str]] = Field(
        default_factory=list,
        description="Groups of cells that reference each other"
    )


class DependencyResponse(BaseModel):
    """Reference graph of a grid's formula cells."""

    dependencies: Dict[str, List[str]] = Field(..., description="Cells each formula reads")
    circular_references: List[List[str]] = Field(
        default_factory=list,
        description="Groups of cells that reference each other"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "dependencies": {"A1": ["B1"], "B1": ["A1"], "C1": ["A1", "A2"]},
                "circular_references": [["A1", "B1"]]
            }
        }


class FormulaFunctionResponse(BaseModel):
    """One documented function."""

    name: str = Field(..., description="Function name")
    description: str = Field(..., description="What it computes")
    syntax: str = Field(..., description="Call syntax")
    examples: List[str] = Field(default_factory=list, description="Example formulas")
    category: str = Field(..., description="math or statistical")


class FunctionListResponse(BaseModel):
    """Formula catalog listing."""

    summary: str = Field(..., description="Short help text")
    functions: List[FormulaFunctionResponse] = Field(..., description="Matching functions")


class FormulaTemplateResponse(BaseModel):
    """Fill-in-the-blanks formula template."""

    name: str
    description: str
    template: str
    example: str


class SuggestRequest(BaseModel):
    """Natural-language formula request."""

    text: str = Field(..., min_length=1, max_length=500, description="e.g. 'total of B2:B10'")


class SuggestResponse(BaseModel):
    """Suggested formula, if the request was understood."""

    formula: Optional[str] = Field(None, description="Suggested formula or null")
