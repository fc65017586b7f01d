from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pathlib import Path

from cutoff.api import process, storage
from cutoff.core import configure_logging, settings
from cutoff.schemas.process import format_validation_errors
from cutoff.services.file_stager import FileStager
from cutoff.services.filter_runner import FilterRunner
from cutoff.services.storage_service import BucketStorage

configure_logging()

app = FastAPI(title="cutoff API", version="0.1.0")
app.include_router(process.router, tags=["process"])
app.include_router(storage.router, tags=["storage"])

app.state.storage = BucketStorage()
app.state.stager = FileStager()
app.state.filter_runner = FilterRunner()


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": format_validation_errors(list(exc.errors()))})


@app.on_event("startup")
async def startup_event():
    """Create the staging roots and start the filter workers."""
    Path(settings.UPLOADS_DIR).mkdir(parents=True, exist_ok=True)
    Path(settings.PROCESSED_DIR).mkdir(parents=True, exist_ok=True)
    await app.state.filter_runner.start()


@app.on_event("shutdown")
async def shutdown_event():
    await app.state.filter_runner.stop()
