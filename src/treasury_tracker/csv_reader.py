"""Delimited text reader for budget and transaction exports.

City open-data exports quote fields that contain commas (vendor names,
descriptions) but never escape quotes or embed newlines, so a simple
quote-toggling splitter is enough.  Data lines whose field count does not
match the header are dropped and counted in
:attr:`~treasury_tracker.models.CsvTable.dropped_rows`.

Escaped quote characters (``""``) and newlines inside quoted fields are not
supported.
"""

from __future__ import annotations

from pathlib import Path

from treasury_tracker.models import CsvTable, Row

QUOTE = '"'


def parse_csv_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one line into trimmed fields, honoring quoted segments.

    A quote character toggles "inside quotes" mode; a delimiter inside quotes
    is kept as part of the field.  Quote characters themselves are not
    emitted.

    Args:
        line: A single line of text without its trailing newline.
        delimiter: Field separator.

    Returns:
        The list of fields, each stripped of surrounding whitespace.
    """
    values: list[str] = []
    current: list[str] = []
    in_quotes = False

    for char in line:
        if char == QUOTE:
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            values.append("".join(current).strip())
            current = []
        else:
            current.append(char)

    values.append("".join(current).strip())
    return values


def read_csv_text(text: str, delimiter: str = ",") -> CsvTable:
    """Parse raw delimited text into ordered row mappings.

    Blank lines are ignored.  The first non-blank line is the header; header
    names are split on the delimiter and trimmed.

    Args:
        text: The whole file content.
        delimiter: Field separator.

    Returns:
        A :class:`CsvTable` with the header, the well-formed rows in file
        order, and the number of rows dropped for a column-count mismatch.
    """
    lines = [line for line in text.split("\n") if line.strip()]
    if not lines:
        return CsvTable()

    headers = [h.strip() for h in lines[0].lstrip("\ufeff").split(delimiter)]
    rows: list[Row] = []
    dropped = 0

    for line in lines[1:]:
        values = parse_csv_line(line, delimiter)
        if len(values) != len(headers):
            dropped += 1
            continue
        rows.append(dict(zip(headers, values)))

    return CsvTable(headers=headers, rows=rows, dropped_rows=dropped)


def read_csv_file(path: Path, delimiter: str = ",") -> CsvTable:
    """Read *path* as UTF-8 and parse it with :func:`read_csv_text`.

    Raises:
        FileNotFoundError: If *path* does not exist.
    """
    text = Path(path).read_text(encoding="utf-8-sig")
    return read_csv_text(text, delimiter)
