"""
Workbooks router - Turn uploaded workbook files into grid snapshots.
"""

import os
import logging
import tempfile
import shutil
from pathlib import Path

from fastapi import APIRouter, UploadFile, File, Depends, HTTPException, status

from api.config import settings
from api.dependencies import (
    get_current_user, get_workbook_service, verify_file_extension, verify_file_size
)
from api.schemas.common import GridPayload
from api.schemas.workbook_schema import WorkbookSnapshotResponse
from services.formula_service import FormulaParser
from services.workbook_service import WorkbookError, WorkbookService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/workbooks', tags=['workbooks'])


@router.post('/snapshot', response_model=WorkbookSnapshotResponse)
async def upload_workbook(
    file: UploadFile = File(..., description="Workbook to read (.xlsx, .xlsm or .csv)"),
    workbook_service: WorkbookService = Depends(get_workbook_service),
    current_user: str = Depends(get_current_user)
):
    """
    Upload a workbook and get its first worksheet as a grid snapshot.

    The first row becomes the column names; formulas are returned as text
    so the snapshot can be sent straight to the evaluation endpoints.

    **Example:**
    ```bash
    curl -X POST http://localhost:8000/api/workbooks/snapshot -F "file=@budget.xlsx"
    ```
    """
    logger.info(f"Workbook upload from {current_user}: {file.filename}")

    # Validate file extension
    verify_file_extension(file.filename)

    temp_path = None
    try:
        fd, temp_path = tempfile.mkstemp(
            suffix=Path(file.filename).suffix,
            dir=settings.TEMP_UPLOAD_DIR
        )
        with os.fdopen(fd, 'wb') as tmp:
            shutil.copyfileobj(file.file, tmp)

        verify_file_size(os.path.getsize(temp_path))

        snapshot = workbook_service.load(temp_path)

    except WorkbookError as e:
        logger.warning(f"Unreadable workbook {file.filename}: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )

    finally:
        if temp_path and os.path.exists(temp_path):
            os.unlink(temp_path)

    formula_cells = sum(
        1 for _, _, value in snapshot.iter_cells() if FormulaParser.is_formula(value)
    )

    return WorkbookSnapshotResponse(
        filename=file.filename,
        grid=GridPayload.from_snapshot(snapshot),
        row_count=snapshot.row_count,
        formula_cells=formula_cells
    )
