"""
Formulas router - Evaluate formulas over grid snapshots.

This module provides endpoints for evaluating single cells or whole grids,
analyzing formula dependencies, and browsing the formula catalog.
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user, get_evaluator
from api.schemas.formula_schema import (
    DependencyResponse, EvaluateRequest, EvaluationResult, FormulaFunctionResponse,
    FormulaTemplateResponse, FunctionListResponse, SheetEvaluationResponse,
    SheetRequest, SuggestRequest, SuggestResponse
)
from services.evaluation_service import DependencyAnalyzer, FormulaEvaluator
from services.formula_catalog import (
    FORMULA_FUNCTIONS, FORMULA_TEMPLATES, get_formula_summary,
    natural_language_to_formula, search_formulas
)

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/formulas', tags=['formulas'])


@router.post('/evaluate', response_model=EvaluationResult)
async def evaluate_formula(
    request: EvaluateRequest,
    evaluator: FormulaEvaluator = Depends(get_evaluator),
    current_user: str = Depends(get_current_user)
):
    """
    Evaluate one cell's text against a grid snapshot.

    Evaluation errors are part of the result (`error` + `message`), not
    HTTP errors: a broken formula is still a successful request.

    **Example:**
    ```bash
    curl -X POST http://localhost:8000/api/formulas/evaluate \\
         -H 'Content-Type: application/json' \\
         -d '{"formula": "=A1*2", "grid": {"columns": ["A"], "rows": [{"A": 21}]}}'
    ```
    """
    snapshot = request.grid.to_snapshot()
    result = evaluator.evaluate(request.formula, snapshot, cell=request.cell)

    if not result.ok:
        logger.info(f"Formula {request.formula!r} -> {result.error.value}: {result.message}")

    return EvaluationResult.from_result(result)


@router.post('/evaluate-sheet', response_model=SheetEvaluationResponse)
async def evaluate_sheet(
    request: SheetRequest,
    evaluator: FormulaEvaluator = Depends(get_evaluator),
    current_user: str = Depends(get_current_user)
):
    """
    Evaluate every formula cell of a grid.

    Returns the display value per cell address plus any circular
    reference groups found in the grid, so cycles resolved to 0 are
    still visible to the caller.
    """
    snapshot = request.grid.to_snapshot()
    results = evaluator.evaluate_sheet(snapshot)
    cycles = DependencyAnalyzer(snapshot).detect_cycles()

    return SheetEvaluationResponse(
        cells={ref: EvaluationResult.from_result(r) for ref, r in results.items()},
        formula_cells=len(results),
        error_count=sum(1 for r in results.values() if not r.ok),
        circular_references=cycles
    )


@router.post('/dependencies', response_model=DependencyResponse)
async def get_dependencies(
    request: SheetRequest,
    current_user: str = Depends(get_current_user)
):
    """
    Map each formula cell to the cells it reads, and report cycles.
    """
    analyzer = DependencyAnalyzer(request.grid.to_snapshot())

    return DependencyResponse(
        dependencies=analyzer.dependencies(),
        circular_references=analyzer.detect_cycles()
    )


@router.get('/functions', response_model=FunctionListResponse)
async def list_functions(
    search: Optional[str] = Query(None, description="Filter by keyword")
):
    """
    List the supported functions.

    **Query Parameters:**
    - `search`: Keyword matched against names, descriptions and examples
    """
    functions = search_formulas(search) if search else list(FORMULA_FUNCTIONS)

    return FunctionListResponse(
        summary=get_formula_summary(),
        functions=[FormulaFunctionResponse(**f.to_dict()) for f in functions]
    )


@router.get('/templates', response_model=List[FormulaTemplateResponse])
async def list_templates():
    """List fill-in-the-blanks formula templates."""
    return [FormulaTemplateResponse(**t.to_dict()) for t in FORMULA_TEMPLATES]


@router.post('/suggest', response_model=SuggestResponse)
async def suggest_formula(request: SuggestRequest):
    """
    Suggest a formula for a short natural-language request.

    Understands sum/total/add, average/mean, max/largest/highest and
    min/smallest/lowest together with a range such as `B2:B10`.
    """
    return SuggestResponse(formula=natural_language_to_formula(request.text))
