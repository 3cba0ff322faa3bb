"""
Pydantic schemas for request/response validation.

This package contains all Pydantic models used for API request validation
and response serialization.
"""

from api.schemas.common import CellValueType, ErrorResponse, GridPayload, HealthCheckResponse
from api.schemas.formula_schema import (
    EvaluateRequest, EvaluationResult, SheetRequest, SheetEvaluationResponse,
    DependencyResponse, FunctionListResponse, SuggestRequest, SuggestResponse
)
from api.schemas.autofill_schema import (
    PatternResponse, DetectRequest, DetectResponse,
    GenerateRequest, GenerateResponse, FillPromptRequest, FillPromptResponse
)
from api.schemas.workbook_schema import WorkbookSnapshotResponse

__all__ = [
    # Common
    'CellValueType',
    'ErrorResponse',
    'GridPayload',
    'HealthCheckResponse',

    # Formula
    'EvaluateRequest',
    'EvaluationResult',
    'SheetRequest',
    'SheetEvaluationResponse',
    'DependencyResponse',
    'FunctionListResponse',
    'SuggestRequest',
    'SuggestResponse',

    # Fill-down
    'PatternResponse',
    'DetectRequest',
    'DetectResponse',
    'GenerateRequest',
    'GenerateResponse',
    'FillPromptRequest',
    'FillPromptResponse',

    # Workbook
    'WorkbookSnapshotResponse',
]
