import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from cutoff.core.errors import ProcessingError
from cutoff.schemas.process import ErrorOut, ProcessOut, parse_process_request
from cutoff.services.process_service import ProcessService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_process_service(request: Request) -> ProcessService:
    state = request.app.state
    return ProcessService(
        storage=state.storage,
        stager=state.stager,
        runner=state.filter_runner,
    )


@router.post("/process", response_model=ProcessOut, responses={500: {"model": ErrorOut}})
async def process_file(
    payload: Any = Body(...),
    svc: ProcessService = Depends(get_process_service),
):
    try:
        request = parse_process_request(payload)
        return await svc.process(request)
    except ProcessingError as e:
        logger.error("Processing failed: %s", e)
        return JSONResponse(status_code=500, content=ErrorOut(error=str(e)).model_dump())
    except Exception as e:
        logger.exception("Unexpected error while processing")
        return JSONResponse(status_code=500, content=ErrorOut(error=f"Internal error: {e}").model_dump())
