"""
Generation of the CSV tables produced by script modules.

The :func:`write_csv` helper writes one table: a header row followed by the
data rows, using the standard minimal quoting rules so that values holding
the delimiter, the quote character or a line break survive the round trip.
Output is byte-for-byte reproducible for identical input.
"""

from __future__ import annotations

import csv
import os
from typing import Iterable, Sequence


def write_csv(out_path: str, header: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    """Write ``header`` and ``rows`` to ``out_path``.

    Parameters
    ----------
    out_path:
        Location of the CSV file to be written.  The parent directory is
        created automatically.
    header:
        Column names, written as the first row.
    rows:
        Data rows.  Their length is validated by the caller.

    Returns
    -------
    str
        The path of the generated CSV file.
    """
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for row in rows:
            writer.writerow(row)
    return out_path
