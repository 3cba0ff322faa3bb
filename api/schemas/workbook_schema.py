"""
Workbook-related Pydantic schemas.

This module contains schemas for workbook uploads converted to grid
snapshots.
"""

from pydantic import BaseModel, Field

from api.schemas.common import GridPayload


class WorkbookSnapshotResponse(BaseModel):
    """Grid snapshot read from an uploaded workbook."""

    filename: str = Field(..., description="Uploaded file name")
    grid: GridPayload = Field(..., description="Snapshot of the first worksheet")
    row_count: int = Field(..., description="Number of data rows (header excluded)")
    formula_cells: int = Field(..., description="Number of cells holding formulas")

    class Config:
        json_schema_extra = {
            "example": {
                "filename": "budget.xlsx",
                "grid": {
                    "columns": ["Item", "Amount"],
                    "rows": [{"Item": "Rent", "Amount": 1200}, {"Item": "Total", "Amount": "=SUM(B1:B1)"}]
                },
                "row_count": 2,
                "formula_cells": 1
            }
        }
