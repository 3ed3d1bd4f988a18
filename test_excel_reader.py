import logging
import pytest
import pandas as pd
from http import HTTPStatus
from unittest.mock import patch
from openpyxl import Workbook
from pydantic import ValidationError

import excel_reader
from excel_reader import LogContext, ReadRequest, SheetGrid, SheetReader, load_sheet
from extraction import ResultTable


@pytest.fixture
def people_df():
    """
    Fixture providing a raw sheet as read with header=None.

    Returns:
        pandas.DataFrame: Header row followed by data rows, blanks as ""
    """
    return pd.DataFrame([
        ["ID", "Name", "City"],
        ["1", "Alice", "NY"],
        ["2", "Bob", ""],
        ["", "", ""],
        ["3", "Cara", "LA"],
    ])


@pytest.fixture
def people_xlsx(tmp_path):
    """
    Fixture writing a real workbook with a title row above the header.

    Returns:
        str: Path to the .xlsx file
    """
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["People export"])
    sheet.append(["ID", "Name", None, "City"])
    sheet.append(["1", "Alice", "x", "NY"])
    sheet.append(["2", "Bob", None, None])
    sheet.append([None, None, None, None])
    sheet.append(["3", "Cara", None, "LA"])
    path = tmp_path / "people.xlsx"
    workbook.save(path)
    return str(path)


class TestSheetGrid:
    """
    Tests for the SheetGrid sheet handle.
    """

    def test_accessors(self):
        grid = SheetGrid([["a", "b"], ["c"]])

        assert grid.physical_row_count == 2
        assert grid.first_row == 0
        assert grid.get_row(0) == ["a", "b"]
        assert grid.get_row(2) is None
        assert grid.get_row(-1) is None
        assert grid.get_cell(1, 0) == "c"
        assert grid.get_cell(1, 1) is None
        assert grid.get_cell(5, 0) is None

    def test_first_row_skips_leading_blank_rows(self):
        grid = SheetGrid([["", None], [" "], ["x"]])
        assert grid.first_row == 2

    def test_empty_grid(self):
        grid = SheetGrid([])
        assert grid.first_row == 0
        assert grid.physical_row_count == 0

    def test_from_dataframe_converts_missing_values(self):
        df = pd.DataFrame([["a", None], [1, float("nan")]])

        grid = SheetGrid.from_dataframe(df)

        assert grid.get_row(0) == ["a", None]
        assert grid.get_cell(1, 0) == "1"
        assert grid.get_cell(1, 1) is None
        assert grid.is_blank(grid.get_cell(1, 1))

    def test_get_row_returns_copy(self):
        grid = SheetGrid([["a"]])
        grid.get_row(0).append("b")
        assert grid.get_row(0) == ["a"]


class TestLoadSheet:
    """
    Tests for the load_sheet function.
    """

    def test_reads_first_sheet_as_text(self, people_xlsx):
        grid = load_sheet(people_xlsx)

        assert grid.first_row == 0
        assert grid.get_row(1) == ["ID", "Name", "", "City"]
        assert grid.get_cell(3, 1) == "Bob"
        assert grid.is_blank(grid.get_cell(3, 3))

    def test_reads_without_header_inference(self, people_df):
        with patch('pandas.read_excel', return_value=people_df) as read_excel:
            grid = load_sheet("people.xlsx")

        read_excel.assert_called_once()
        kwargs = read_excel.call_args.kwargs
        assert kwargs["header"] is None
        assert kwargs["dtype"] is str
        assert grid.physical_row_count == 5


class TestReadRequest:
    """
    Tests for the ReadRequest schema.
    """

    def test_defaults(self):
        request = ReadRequest(file_path="a.xlsx")
        assert request.header_row_offset == 0
        assert request.columns is None
        assert request.rows is None

    def test_negative_header_offset_is_rejected(self):
        with pytest.raises(ValidationError):
            ReadRequest(file_path="a.xlsx", header_row_offset=-1)


class TestSheetReader:
    """
    Tests for the SheetReader service.
    """

    def test_reads_real_workbook(self, people_xlsx):
        """
        Test extraction from a real file with the header on the second row.

        The unnamed third column is dropped, the blank row is skipped and
        Bob's missing city is omitted.
        """
        result = SheetReader.read_file(ReadRequest(file_path=people_xlsx, header_row_offset=1))

        assert result.is_success()
        assert result.data.columns == ["ID", "Name", "City"]
        assert result.data.rows == [["1", "Alice", "NY"], ["2", "Bob"], ["3", "Cara", "LA"]]

    def test_applies_selections(self, people_df):
        with patch('os.path.exists', return_value=True), \
             patch('pandas.read_excel', return_value=people_df):
            result = SheetReader.read_file(
                ReadRequest(file_path="people.xlsx", columns=["id", "3"], rows="1|4")
            )

        assert result.is_success()
        assert result.data == ResultTable(columns=["ID", "City"], rows=[["1", "NY"], ["3", "LA"]])

    def test_when_file_path_missing_returns_404(self):
        result = SheetReader.read_file(ReadRequest())

        assert result.is_failure()
        assert result.status_code == HTTPStatus.NOT_FOUND

    def test_when_file_not_found_returns_404(self):
        with patch('os.path.exists', return_value=False):
            result = SheetReader.read_file(ReadRequest(file_path="missing.xlsx"))

        assert result.status_code == HTTPStatus.NOT_FOUND
        assert "missing.xlsx" in result.error

    def test_when_workbook_unreadable_returns_400(self):
        with patch('os.path.exists', return_value=True), \
             patch('pandas.read_excel', side_effect=ValueError("Invalid Excel format")):
            result = SheetReader.read_file(ReadRequest(file_path="broken.xlsx"))

        assert result.status_code == HTTPStatus.BAD_REQUEST
        assert "Cannot read file" in result.error
        assert "Invalid Excel format" in result.error

    @pytest.mark.parametrize(
        "request_kwargs, message",
        [
            ({"rows": "abc"}, "abc"),
            ({"rows": "5:2"}, "5:2"),
            ({"columns": ["Country"]}, "Country"),
            ({"header_row_offset": 40}, "offset 40"),
        ],
        ids=["parse-error", "range-error", "empty-selection", "header-not-found"]
    )
    def test_extraction_errors_return_400(self, people_df, request_kwargs, message):
        """
        Test that engine errors become 400 failures naming the offending input.

        Args:
            people_df: Fixture providing the raw sheet
            request_kwargs: Selections that make the extraction fail
            message: Text expected in the error message
        """
        with patch('os.path.exists', return_value=True), \
             patch('pandas.read_excel', return_value=people_df):
            result = SheetReader.read_file(ReadRequest(file_path="people.xlsx", **request_kwargs))

        assert result.is_failure()
        assert result.status_code == HTTPStatus.BAD_REQUEST
        assert message in result.error

    def test_unexpected_error_returns_500(self, people_df):
        with patch('os.path.exists', return_value=True), \
             patch('pandas.read_excel', return_value=people_df), \
             patch.object(excel_reader, 'extract', side_effect=RuntimeError("boom")):
            result = SheetReader.read_file(ReadRequest(file_path="people.xlsx"))

        assert result.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
        assert "boom" in result.error

    def test_read_file_async(self, people_xlsx):
        import asyncio

        result = asyncio.run(SheetReader.read_file_async(ReadRequest(file_path=people_xlsx, header_row_offset=1)))

        assert result.is_success()
        assert result.data.total_rows == 3


class TestLogContext:
    """
    Tests for the LogContext timing helper.
    """

    def test_logs_start_and_completion(self, caplog):
        with caplog.at_level(logging.INFO, logger="excel_reader"):
            with LogContext("unit of work", request_id="abc12345"):
                pass

        messages = [record.getMessage() for record in caplog.records]
        assert "Starting unit of work" in messages
        assert any(message.startswith("Completed unit of work") for message in messages)
        assert all(record.request_id == "abc12345" for record in caplog.records)

    def test_logs_failure_and_reraises(self, caplog):
        with caplog.at_level(logging.INFO, logger="excel_reader"):
            with pytest.raises(RuntimeError):
                with LogContext("unit of work"):
                    raise RuntimeError("broken")

        assert any(record.levelno == logging.ERROR and "broken" in record.getMessage() for record in caplog.records)

    def test_details_added_in_block_are_logged_on_completion(self, caplog):
        with caplog.at_level(logging.INFO, logger="excel_reader"):
            with LogContext("unit of work", file_path="a.xlsx") as context:
                context.details["row_count"] = 7

        completed = [record for record in caplog.records if record.getMessage().startswith("Completed")]
        assert len(completed) == 1
        assert completed[0].row_count == 7
        assert completed[0].file_path == "a.xlsx"
        assert completed[0].duration >= 0

    def test_workbook_loading_reports_row_count(self, people_xlsx, caplog):
        """
        Test that the timed loading phase carries the sheet size, so loading
        is timed in one place.
        """
        with caplog.at_level(logging.INFO, logger="excel_reader"):
            SheetReader.read_file(ReadRequest(file_path=people_xlsx, header_row_offset=1))

        loading = [
            record for record in caplog.records
            if record.getMessage().startswith("Completed workbook loading")
        ]
        assert len(loading) == 1
        assert loading[0].row_count == load_sheet(people_xlsx).physical_row_count
