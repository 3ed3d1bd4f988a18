import re
import logging
from typing import Callable, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel

from utils.errors import EmptySelectionError, HeaderNotFoundError, ParseError, RangeError

logger = logging.getLogger(__name__)

RANGE_SEPARATOR = "|"
BOUND_SEPARATOR = ":"

_INTEGER_RE = re.compile(r"^[+-]?\d+$")

# (1-based position, header text)
HeaderCell = Tuple[int, str]


class ResultTable(BaseModel):
    """
    Table produced by an extraction.

    Attributes:
        columns: Resolved header names in header left-to-right order
        rows: Text values of the selected, non-blank cells of each kept row.
            Rows are ragged: blank cells are omitted, never padded.
    """
    columns: List[str] = []
    rows: List[List[str]] = []

    @property
    def total_rows(self) -> int:
        return len(self.rows)


def is_blank(value) -> bool:
    """A cell is blank when it is absent or holds no text."""
    if value is None:
        return True
    if isinstance(value, float) and value != value:
        return True
    return str(value).strip() == ""


def _parse_bound(text: str, token: str, spec: str) -> int:
    text = text.strip()
    if not _INTEGER_RE.match(text):
        raise ParseError(f"Invalid range token: {token!r}", token=token, spec=spec)
    return int(text)


def parse_ranges(spec: Optional[str], default_start: int, default_end: int) -> Set[int]:
    """
    Parse a pipe-separated range specification such as ``"1|3:10|15"``.

    Each token is either a single 1-based number ``N`` or an inclusive range
    ``A:B``; either side of a range may be left empty to fall back to
    ``default_start`` / ``default_end``. An absent or whitespace-only
    specification selects ``default_start..default_end``.

    Args:
        spec: Range specification text, or None
        default_start: Start used when the specification or a left bound is omitted
        default_end: End used when the specification or a right bound is omitted

    Returns:
        Set of selected 1-based indexes

    Raises:
        ParseError: If a token is not a valid integer or range
        RangeError: If a token starts below 1 or ends before it starts
    """
    if spec is None or not spec.strip():
        return set(range(default_start, default_end + 1))

    result: Set[int] = set()
    for token in spec.split(RANGE_SEPARATOR):
        token = token.strip()
        if not token:
            continue

        if BOUND_SEPARATOR not in token:
            start = end = _parse_bound(token, token, spec)
        else:
            left, right = token.split(BOUND_SEPARATOR, 1)
            start = default_start if not left.strip() else _parse_bound(left, token, spec)
            end = default_end if not right.strip() else _parse_bound(right, token, spec)

        if start < 1:
            raise RangeError(f"Range cannot start below 1: {token!r}", token=token, spec=spec)
        if end < start:
            raise RangeError(f"Range cannot end before it starts: {token!r}", token=token, spec=spec)

        result.update(range(start, end + 1))

    return result


def read_header(cells: Iterable, blank: Callable[[object], bool] = is_blank) -> List[HeaderCell]:
    """Pair every non-blank header cell with its 1-based position."""
    return [
        (position, str(value))
        for position, value in enumerate(cells, start=1)
        if not blank(value)
    ]


def normalize_column_spec(columns) -> List[str]:
    """
    Flatten a column selection into a list of tokens.

    Accepts None, a single string or a list of strings; every item may carry
    several pipe-separated tokens. Empty tokens are dropped.
    """
    if columns is None:
        return []
    if isinstance(columns, str):
        columns = [columns]

    tokens = []
    for item in columns:
        if item is None:
            continue
        tokens.extend(part.strip() for part in str(item).split(RANGE_SEPARATOR) if part.strip())
    return tokens


def resolve_columns(header: List[HeaderCell], column_spec=None) -> List[HeaderCell]:
    """
    Select the header columns that take part in the output.

    A column is selected when any token equals its name (case-insensitive,
    trimmed) or designates its position. Name matching is checked first:
    a token equal to some header name is never read as a position, even when
    the name looks numeric. Tokens that are neither a header name nor a valid
    position range are ignored. The result follows header order, not token order.

    Args:
        header: Non-blank header cells as produced by ``read_header``
        column_spec: Optional column tokens (names, positions or position ranges)

    Returns:
        Selected (position, name) pairs in header left-to-right order

    Raises:
        RangeError: If a positional token is out of bounds
    """
    tokens = normalize_column_spec(column_spec)
    if not tokens:
        return list(header)

    header_names = {name.strip().lower() for _, name in header}
    last_position = header[-1][0] if header else 0

    wanted_names: Set[str] = set()
    wanted_positions: Set[int] = set()
    for token in tokens:
        key = token.lower()
        if key in header_names:
            wanted_names.add(key)
            continue
        try:
            wanted_positions.update(parse_ranges(token, 1, last_position))
        except ParseError:
            logger.warning("Column token matches no header", extra={"token": token})

    return [
        (position, name)
        for position, name in header
        if name.strip().lower() in wanted_names or position in wanted_positions
    ]


def resolve_rows(header_row_offset: int, physical_row_count: int, row_spec: Optional[str] = None,
                 first_row: int = 0) -> Set[int]:
    """
    Select data rows by ordinal, where 1 is the first row after the header.

    Open bounds and an absent specification cover every remaining row of the sheet.
    """
    first_data_row = first_row + header_row_offset + 1
    return parse_ranges(row_spec, 1, physical_row_count - first_data_row)


def extract(sheet, header_row_offset: int = 0, column_spec=None, row_spec: Optional[str] = None) -> ResultTable:
    """
    Build a table from the selected columns and rows of a sheet.

    Rows absent from the sheet, blank rows, and rows left without any value
    once unselected and blank cells are dropped do not appear in the result.

    Args:
        sheet: Sheet handle exposing ``first_row``, ``physical_row_count``,
            ``get_row``, ``get_cell`` and the ``is_blank`` cell predicate
        header_row_offset: Rows to skip after the sheet's first row to reach the header
        column_spec: Optional column tokens, see ``resolve_columns``
        row_spec: Optional row range specification, see ``parse_ranges``

    Returns:
        ResultTable with resolved columns and ragged rows

    Raises:
        HeaderNotFoundError: If there is no row at the header offset
        EmptySelectionError: If no header column is selected
        ParseError, RangeError: If a specification is malformed
    """
    header_index = sheet.first_row + header_row_offset
    header_cells = sheet.get_row(header_index)
    if header_cells is None:
        raise HeaderNotFoundError(
            f"Header row not found at offset {header_row_offset}",
            token=str(header_row_offset)
        )

    header = read_header(header_cells, sheet.is_blank)
    columns = resolve_columns(header, column_spec)
    if not columns:
        spec_text = RANGE_SEPARATOR.join(normalize_column_spec(column_spec))
        if spec_text:
            raise EmptySelectionError(f"No header column matches: {spec_text!r}", spec=spec_text)
        raise EmptySelectionError(f"Header row at offset {header_row_offset} has no named columns")

    eligible = resolve_rows(header_row_offset, sheet.physical_row_count, row_spec, sheet.first_row)
    logger.debug(
        "Resolved selection",
        extra={"columns": [name for _, name in columns], "eligible_rows": len(eligible)}
    )

    table = ResultTable(columns=[name for _, name in columns])
    for ordinal, row_index in enumerate(range(header_index + 1, sheet.physical_row_count), start=1):
        if ordinal not in eligible:
            continue

        cells = sheet.get_row(row_index)
        if cells is None or all(sheet.is_blank(value) for value in cells):
            continue

        values = []
        for position, _ in columns:
            value = sheet.get_cell(row_index, position - 1)
            if not sheet.is_blank(value):
                values.append(str(value))

        if values:
            table.rows.append(values)

    return table
