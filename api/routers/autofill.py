"""
Autofill router - Fill-down pattern detection and value generation.
"""

import logging
from fastapi import APIRouter, Depends

from api.dependencies import get_current_user, get_pattern_detector, get_value_generator
from api.schemas.autofill_schema import (
    DetectRequest, DetectResponse, FillPromptRequest, FillPromptResponse,
    GenerateRequest, GenerateResponse, PatternResponse
)
from services.pattern_service import PatternDetector, ValueGenerator, build_fill_prompt

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/autofill', tags=['autofill'])


@router.post('/detect', response_model=DetectResponse)
async def detect_pattern(
    request: DetectRequest,
    detector: PatternDetector = Depends(get_pattern_detector)
):
    """
    Detect the pattern of a column's existing values.

    Returns `pattern: null` when every value is blank.
    """
    pattern = detector.detect(request.values)
    return DetectResponse(pattern=PatternResponse.from_pattern(pattern) if pattern else None)


@router.post('/generate', response_model=GenerateResponse)
async def generate_values(
    request: GenerateRequest,
    detector: PatternDetector = Depends(get_pattern_detector),
    generator: ValueGenerator = Depends(get_value_generator),
    current_user: str = Depends(get_current_user)
):
    """
    Generate the next `count` values for a column.

    Patterns below the confidence threshold fall back to repeating the
    last value. The caller merges the values into its grid.

    **Example:**
    ```bash
    curl -X POST http://localhost:8000/api/autofill/generate \\
         -H 'Content-Type: application/json' \\
         -d '{"values": ["Item 1", "Item 2"], "count": 2}'
    ```
    """
    pattern = detector.detect(request.values)
    values = generator.generate(pattern, request.values, request.count, request.origin_offset)

    logger.info(f"Generated {len(values)} values "
                f"({pattern.kind.value if pattern else 'no pattern'})")

    return GenerateResponse(
        values=values,
        pattern=PatternResponse.from_pattern(pattern) if pattern else None
    )


@router.post('/prompt', response_model=FillPromptResponse)
async def build_prompt(
    request: FillPromptRequest,
    detector: PatternDetector = Depends(get_pattern_detector)
):
    """Render the assistant prompt describing a fill-down request."""
    pattern = detector.detect(request.values)
    prompt = build_fill_prompt(
        request.values, request.column_name, request.grid.to_snapshot(), pattern=pattern
    )

    return FillPromptResponse(
        prompt=prompt,
        pattern=PatternResponse.from_pattern(pattern) if pattern else None
    )
