"""
CSV rendering for dashboard and feedback downloads.
"""

import csv
import io
from typing import Any, Iterable, Sequence


def to_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """
    Render rows as CSV text.

    The header row is written plain. In data rows every text value is
    quoted with embedded quotes doubled, numbers are left bare and None
    becomes an empty quoted field.
    """
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(headers)

    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])

    return buffer.getvalue().rstrip("\n")
