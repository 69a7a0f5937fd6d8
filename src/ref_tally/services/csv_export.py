"""CSV formatting for report exports."""

import csv
import io
from collections.abc import Mapping, Sequence

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


def to_csv(records: Sequence[Mapping[str, object]]) -> str:
    """Render uniform records as CSV with every field quoted.

    The header comes from the first record's keys, in order. Rows are joined
    with a bare newline and the output has no trailing newline.
    """
    if not records:
        return ""
    headers = list(records[0].keys())
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for record in records:
        writer.writerow([str(record.get(header, "")) for header in headers])
    return buffer.getvalue().removesuffix("\n")
