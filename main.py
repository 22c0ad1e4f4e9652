from fastapi import FastAPI, Depends, Request
import os
import logging
from datetime import datetime
from functools import lru_cache
from typing import List
from fastapi.responses import FileResponse, JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.background import BackgroundTask
from starlette.datastructures import UploadFile

from artifact_builder import XLSX_MEDIA_TYPE
from config import Settings
from utils.errors import UnexpectedError, UploadTooLarge
from utils.result import Result
from workspace import remove_path, upload_storage_name
from zip_merge_process import MergePipeline, UploadedArchive


# Create logs directory if it doesn't exist
log_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs")
os.makedirs(log_dir, exist_ok=True)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Add file handler to write logs to file
log_file_path = os.path.join(log_dir, f"app_{datetime.now().strftime('%Y%m%d')}.log")
file_handler = logging.FileHandler(log_file_path)
file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
logging.getLogger().addHandler(file_handler)

UPLOAD_CHUNK_SIZE = 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()


def get_pipeline(settings: Settings = Depends(get_settings)) -> MergePipeline:
    return MergePipeline(settings)


# Initialize FastAPI app with metadata
app = FastAPI(
    title="Zip Excel Merger API",
    description="API for merging the spreadsheets inside uploaded zip archives into one workbook",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def store_upload(upload: UploadFile, settings: Settings) -> UploadedArchive:
    """
    Write an uploaded file into the working directory in chunks.

    Args:
        upload: The multipart file part
        settings: Provides the working directory and the size limit

    Returns:
        UploadedArchive: The stored file and its client-supplied name

    Raises:
        UploadTooLarge: If the file exceeds ``settings.max_upload_bytes``
    """
    original_name = upload.filename or "upload.zip"
    storage_path = settings.ensure_work_dir() / upload_storage_name(original_name)
    size = 0
    try:
        with open(storage_path, "wb") as destination:
            while True:
                chunk = await upload.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > settings.max_upload_bytes:
                    raise UploadTooLarge(
                        f"{original_name} exceeds the maximum upload size of {settings.max_upload_bytes} bytes"
                    )
                destination.write(chunk)
    except Exception:
        remove_path(storage_path)
        raise

    logger.info(f"Stored upload {original_name}", extra={"storage_path": str(storage_path), "size_bytes": size})
    return UploadedArchive(storage_path=storage_path, original_name=original_name)


def discard_uploads(archives: List[UploadedArchive]) -> None:
    for archive in archives:
        remove_path(archive.storage_path)


def error_response(result: Result) -> JSONResponse:
    return JSONResponse(status_code=result.status_code.value, content=result.to_dict())


# API Endpoints
@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok"}


@app.post(
    "/upload-zip",
    tags=["Archive Merge"]
)
async def upload_zip(
    request: Request,
    settings: Settings = Depends(get_settings),
    pipeline: MergePipeline = Depends(get_pipeline)
):
    """
    Merge the spreadsheets of every uploaded zip archive into one workbook.

    Files are accepted under any multipart field name. Every sheet of every
    .xlsx/.xls file at the top level of each archive is appended in upload
    order; only the first header row is kept.

    Returns:
        The merged .xlsx document as an attachment, or a JSON error with
        ``success``, ``status_code``, ``status``, ``code`` and ``error``
    """
    form = await request.form()
    uploads = [value for _, value in form.multi_items() if isinstance(value, UploadFile)]
    logger.info(f"Received merge request with {len(uploads)} files")

    archives: List[UploadedArchive] = []
    try:
        for upload in uploads:
            archives.append(await store_upload(upload, settings))
    except UploadTooLarge as e:
        logger.warning(e.message)
        discard_uploads(archives)
        return error_response(Result.from_error(e))
    except Exception as e:
        logger.exception(f"Failed to store uploads: {str(e)}")
        discard_uploads(archives)
        return error_response(Result.from_error(UnexpectedError()))
    finally:
        for upload in uploads:
            await upload.close()

    result = await pipeline.process_archives(archives)

    if result.is_failure():
        return error_response(result)

    artifact_path = result.data
    return FileResponse(
        artifact_path,
        media_type=XLSX_MEDIA_TYPE,
        filename=artifact_path.name,
        background=BackgroundTask(pipeline.janitor.delete_artifact, artifact_path)
    )


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Zip Excel Merger API in development mode.")
    uvicorn.run("main:app", host="0.0.0.0", port=get_settings().port, reload=True)
