import os
import time
import uuid
import logging
from http import HTTPStatus
from typing import List, Optional

import pandas as pd
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from extraction import ResultTable, extract, is_blank
from utils.errors import ExtractionError
from utils.result import Result

logger = logging.getLogger(__name__)

class LogContext:
    """
    Times one phase of a request and logs its start and its outcome.

    Keyword arguments become structured log fields; fields added to
    ``details`` inside the block are reported with the completion message.
    """
    def __init__(self, operation_name: str, request_id: Optional[str] = None, **details):
        self.operation_name = operation_name
        self.request_id = request_id or str(uuid.uuid4())[:8]
        self.details = details
        self._started = 0.0

    def _fields(self, **more) -> dict:
        return {"request_id": self.request_id, **self.details, **more}

    def __enter__(self):
        self._started = time.perf_counter()
        logger.info(f"Starting {self.operation_name}", extra=self._fields())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.perf_counter() - self._started
        if exc_type is None:
            logger.info(
                f"Completed {self.operation_name} in {duration:.2f}s",
                extra=self._fields(duration=duration)
            )
        else:
            logger.error(
                f"Failed {self.operation_name} in {duration:.2f}s: {exc_val}",
                extra=self._fields(duration=duration),
                exc_info=(exc_type, exc_val, exc_tb)
            )
        return False


class SheetGrid:
    """
    Read-only grid of cell texts for a single worksheet.

    Rows and columns are indexed from 0. Cells outside the grid are absent
    and read as None.
    """
    def __init__(self, rows: List[List[Optional[str]]]):
        self._rows = [[self._cell_text(value) for value in row] for row in rows]
        self.first_row = next(
            (index for index, row in enumerate(self._rows) if not all(self.is_blank(value) for value in row)),
            0
        )

    @staticmethod
    def _cell_text(value) -> Optional[str]:
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            return None
        return str(value)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "SheetGrid":
        """Build a grid from a DataFrame read with ``header=None``."""
        return cls(df.values.tolist())

    @property
    def physical_row_count(self) -> int:
        return len(self._rows)

    def get_row(self, index: int) -> Optional[List[Optional[str]]]:
        if index < 0 or index >= len(self._rows):
            return None
        return list(self._rows[index])

    def get_cell(self, row_index: int, column_index: int) -> Optional[str]:
        row = self.get_row(row_index)
        if row is None or column_index < 0 or column_index >= len(row):
            return None
        return row[column_index]

    @staticmethod
    def is_blank(value) -> bool:
        return is_blank(value)


def load_sheet(file_path: str) -> SheetGrid:
    """
    Read the first worksheet of a workbook as text.

    Args:
        file_path: Path to an .xlsx or .xls file

    Returns:
        SheetGrid holding every cell of the first sheet as text
    """
    df = pd.read_excel(
        file_path,
        sheet_name=0,
        header=None,
        dtype=str,
        keep_default_na=False,
        na_filter=False
    )
    return SheetGrid.from_dataframe(df)


class ReadRequest(BaseModel):
    """
    Schema for a sheet extraction request.

    Attributes:
        file_path: Full path to the workbook
        header_row_offset: Rows to skip before the header row (0 = first row)
        columns: Column names, 1-based positions or position ranges to keep
        rows: Row range specification, 1 being the first row after the header
    """
    file_path: Optional[str] = None
    header_row_offset: int = Field(default=0, ge=0)
    columns: Optional[List[str]] = None
    rows: Optional[str] = None


class SheetReader:
    """
    Reads a workbook and extracts the requested part of its first sheet.

    This class contains methods to:
    - Validate workbook existence
    - Load the first sheet as a text grid
    - Apply the column and row selections
    """

    @staticmethod
    def read_file(request: ReadRequest) -> Result[ResultTable]:
        """
        Extract a table from the workbook described by the request.

        Args:
            request: ReadRequest with file path and selections

        Returns:
            Result[ResultTable]: Result object containing either the table or an error
        """
        request_id = str(uuid.uuid4())[:8]
        log_context = {
            "request_id": request_id,
            "file_path": request.file_path,
            "header_row_offset": request.header_row_offset,
            "columns": request.columns,
            "rows": request.rows
        }

        logger.info("Reading workbook", extra=log_context)

        try:
            with LogContext("workbook loading", **log_context) as loading:
                load_result = SheetReader._load(request.file_path)
                if load_result.is_success():
                    loading.details["row_count"] = load_result.data.physical_row_count

            if not load_result.is_success():
                logger.warning(f"Workbook loading failed: {load_result.error}", extra=log_context)
                return load_result

            sheet = load_result.data
            log_context["row_count"] = sheet.physical_row_count

            with LogContext("sheet extraction", **log_context):
                table = extract(sheet, request.header_row_offset, request.columns, request.rows)

            logger.info(
                f"Extracted {table.total_rows} rows and {len(table.columns)} columns",
                extra=log_context
            )
            return Result.ok(table)

        except ExtractionError as e:
            logger.warning(
                f"Extraction rejected: {e.message}",
                extra={**log_context, "token": e.token, "spec": e.spec, "error_type": type(e).__name__}
            )
            return Result.invalid_input(e.message)
        except Exception as e:
            logger.exception("Unexpected error during extraction", extra={**log_context, "error": str(e)})
            return Result.server_error(f"Processing error: {str(e)}")

    @staticmethod
    async def read_file_async(request: ReadRequest) -> Result[ResultTable]:
        """Run ``read_file`` in a worker thread, off the event loop."""
        return await run_in_threadpool(SheetReader.read_file, request)

    @staticmethod
    def _load(file_path: Optional[str]) -> Result[SheetGrid]:
        """
        Validates that the workbook exists and can be read.

        Args:
            file_path: Path to the workbook

        Returns:
            Result containing either the SheetGrid or error message
        """
        if file_path is None:
            logger.error("File path is None")
            return Result.not_found("No file path provided")

        if not os.path.exists(file_path):
            logger.error("File not found", extra={"file_path": file_path})
            return Result.not_found(f"File does not exist at path: {file_path}")

        try:
            return Result.ok(load_sheet(file_path))
        except Exception as e:
            logger.error(
                "Failed to read workbook",
                extra={"file_path": file_path, "error": str(e), "error_type": type(e).__name__}
            )
            return Result.fail(f"Cannot read file: {str(e)}", status_code=HTTPStatus.BAD_REQUEST)
