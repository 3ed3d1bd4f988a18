from fastapi import FastAPI, BackgroundTasks, File, Query, UploadFile, status
import os
import uuid
import shutil
import logging
from datetime import datetime
from urllib.parse import quote
from typing import List, Optional
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware

from excel_reader import ReadRequest, SheetReader
from json_writer import JSON_EXTENSION, WritingProcessor, output_file_name
from utils.result import Result


BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Relative directories are resolved against the application directory
LOG_DIR = os.path.join(BASE_DIR, os.environ.get("LOG_DIRECTORY", "logs"))
TEMP_DIR = os.path.join(BASE_DIR, os.environ.get("TEMP_DIRECTORY", "temp"))
os.makedirs(LOG_DIR, exist_ok=True)
os.makedirs(TEMP_DIR, exist_ok=True)

ALLOWED_EXTENSIONS = (".xls", ".xlsx")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Add file handler to write logs to file
log_file_path = os.path.join(LOG_DIR, f"app_{datetime.now().strftime('%Y%m%d')}.log")
file_handler = logging.FileHandler(log_file_path)
file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
logging.getLogger().addHandler(file_handler)


app = FastAPI(
    title="xls Converter API",
    description="API for converting the first sheet of xls/xlsx files to JSON",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def has_allowed_extension(file_name: Optional[str]) -> bool:
    return os.path.splitext(file_name or "")[1].lower() in ALLOWED_EXTENSIONS


def get_temp_file_path(file_name: str) -> str:
    """Unique path in the temp directory keeping the upload's extension."""
    return os.path.join(TEMP_DIR, f"{uuid.uuid4()}{os.path.splitext(file_name)[1].lower()}")


def save_upload(file: UploadFile, file_path: str) -> None:
    with open(file_path, "wb") as out:
        shutil.copyfileobj(file.file, out)


def attachment_disposition(file_name: str) -> str:
    """
    Content-Disposition value for a download.

    Names that are not plain ASCII, or that carry characters needing escape
    such as quotes, are sent percent-encoded as ``filename*`` (RFC 6266).
    """
    quoted = quote(file_name)
    if quoted != file_name:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{file_name}"'


def delete_temp_file(file_path: str) -> None:
    if os.path.exists(file_path):
        os.remove(file_path)
        logger.debug("Deleted temp file", extra={"file_path": file_path})


def error_response(result: Result) -> JSONResponse:
    return JSONResponse(status_code=result.status_code.value, content=result.to_dict())


@app.post(
    "/api/converter/to-json",
    tags=["Converter"],
    responses={
        status.HTTP_200_OK: {"content": {"application/json": {}}, "description": "JSON file with the extracted rows"},
        status.HTTP_400_BAD_REQUEST: {"description": "Invalid parameters or unreadable file"},
    }
)
async def to_json(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    column: List[str] = Query(default=[], description="Column names, 1-based positions or ranges such as 2:4"),
    header_row: int = Query(default=1, alias="headerRow", description="1-based index of the header row"),
    rows: Optional[str] = Query(default=None, description='Rows specification such as "1|3:10|15", 1 being the first row after the header'),
):
    """
    Convert the first sheet of an uploaded xls/xlsx file to a JSON file.

    The header row names the output columns. Blank header cells, blank rows
    and blank data cells are skipped, so a row object may leave trailing
    columns null.

    Returns:
        JSON attachment named after the uploaded file, or an error body with:
            - success: always false
            - status_code / status: HTTP status of the failure
            - error: Explanation including the offending token when relevant
    """
    logger.info(
        "Conversion requested",
        extra={"upload_name": file.filename, "column": column, "header_row": header_row, "rows": rows}
    )

    if not has_allowed_extension(file.filename):
        return error_response(Result.invalid_input("Uploaded file has invalid extension"))

    if header_row < 1:
        return error_response(Result.invalid_input("Header row value cannot be less than 1"))

    temp_file_path = get_temp_file_path(file.filename)
    background_tasks.add_task(delete_temp_file, temp_file_path)

    await run_in_threadpool(save_upload, file, temp_file_path)

    read_request = ReadRequest(
        file_path=temp_file_path,
        header_row_offset=header_row - 1,
        columns=column or None,
        rows=rows
    )
    processor = WritingProcessor(JSON_EXTENSION)

    result = (await SheetReader.read_file_async(read_request)).and_then(processor.write)
    result.on_failure(lambda error: logger.warning(f"Conversion failed: {error}", extra={"upload_name": file.filename}))

    if result.is_failure():
        return error_response(result)

    download_name = output_file_name(file.filename, JSON_EXTENSION)
    return Response(
        content=result.data,
        media_type=processor.media_type,
        headers={"Content-Disposition": attachment_disposition(download_name)}
    )


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting xls Converter API in development mode.")
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
