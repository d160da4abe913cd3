"""CSV upload helpers shared by the backup restore and the library importer."""

from __future__ import annotations

import csv
import io
import re
from typing import Dict, Iterable, List, Optional, Tuple

from recshelf.exceptions import ImportValidationError

_HEADER_RE = re.compile(r"[^a-z0-9]")


def normalize_header(header: Optional[str]) -> str:
    """Case- and punctuation-insensitive header key ("Ave. Rating" -> "averating")."""
    return _HEADER_RE.sub("", (header or "").lower())


def validate_csv_upload(filename: Optional[str], data: Optional[bytes], missing_message: str = "Please select a CSV file.") -> None:
    if not filename or data is None:
        raise ImportValidationError(missing_message)
    if not filename.lower().endswith('.csv'):
        raise ImportValidationError("Please upload a CSV file.")
    if not data.strip():
        raise ImportValidationError("The uploaded file is empty.")


def read_csv(data: bytes) -> Tuple[List[str], List[Dict[str, str]]]:
    """Decode and parse CSV bytes; row keys are normalized headers, values stripped."""
    try:
        text = data.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        raise ImportValidationError("The file must be UTF-8 encoded CSV.") from e
    reader = csv.reader(io.StringIO(text))
    try:
        headers = next(reader)
    except StopIteration:
        return [], []
    keys = [normalize_header(h) for h in headers]

    rows = []
    for raw in reader:
        if not any(cell.strip() for cell in raw):
            continue
        row = {}
        for key, cell in zip(keys, raw):
            if key and key not in row:
                row[key] = cell.strip()
        rows.append(row)
    return headers, rows


def detect_csv_format(headers: Iterable[str]) -> Optional[str]:
    """'backup' for full-backup files, 'library' for personal-library exports, else None."""
    keys = {normalize_header(h) for h in headers}
    if {'recid', 'rectitle'} <= keys:
        return 'backup'
    if 'title' in keys and keys & {'author', 'seriesname', 'narratedby', 'asin'}:
        return 'library'
    return None
