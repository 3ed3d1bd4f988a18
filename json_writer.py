import os
import json
import logging
from typing import Any, Dict, List

from extraction import ResultTable
from utils.errors import WriterError
from utils.result import Result

logger = logging.getLogger(__name__)

JSON_EXTENSION = ".json"


class JsonWriter:
    """Serializes a ResultTable as a JSON array of row objects."""

    media_type = "application/json"

    def write(self, table: ResultTable) -> bytes:
        return json.dumps(self.to_records(table), ensure_ascii=False).encode("utf-8")

    @staticmethod
    def to_records(table: ResultTable) -> List[Dict[str, Any]]:
        """
        Key every row by column name.

        Values fill the columns from the left; columns past the end of a
        ragged row are null.
        """
        seen = set()
        for name in table.columns:
            if name in seen:
                raise WriterError(f"Duplicate column name cannot be written to JSON: {name!r}")
            seen.add(name)

        records = []
        for row in table.rows:
            values = list(row) + [None] * (len(table.columns) - len(row))
            records.append(dict(zip(table.columns, values)))
        return records


class WritingProcessor:
    """Selects the writer for an output file extension."""

    _writers = {
        JSON_EXTENSION: JsonWriter,
    }

    def __init__(self, extension: str):
        writer_class = self._writers.get(extension.lower())
        if writer_class is None:
            raise WriterError(f"Invalid file extension: {extension}")
        self.extension = extension.lower()
        self.writer = writer_class()

    @property
    def media_type(self) -> str:
        return self.writer.media_type

    def write(self, table: ResultTable) -> Result[bytes]:
        """
        Serialize the table.

        Returns:
            Result[bytes]: The encoded document, or a 400 failure when the
            table cannot be represented in this format
        """
        try:
            content = self.writer.write(table)
        except WriterError as e:
            logger.warning(f"Writing failed: {e}", extra={"extension": self.extension})
            return Result.invalid_input(str(e))
        logger.info(
            "Serialized table",
            extra={"extension": self.extension, "size_bytes": len(content), "total_rows": table.total_rows}
        )
        return Result.ok(content)


def output_file_name(original_name: str, extension: str) -> str:
    """Replace the extension of an uploaded file name, e.g. ``data.xlsx`` -> ``data.json``."""
    base, _ = os.path.splitext(os.path.basename(original_name or ""))
    return f"{base or 'result'}{extension}"
