"""CSV-backed mod database: loading, row merging, hashing and atomic writes."""

import contextlib
import csv
import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import ConfigurationError, DuplicateRecordError
from .model import COLUMNS, ModRecord

logger = logging.getLogger(__name__)

# Identity and version state. Display-only columns are not hashed.
HASHED_COLUMNS = [
    "Group",
    "Type",
    "ID",
    "Loader",
    "CurrentVersion",
    "CurrentVersionUrl",
    "CurrentGameVersion",
    "NextVersion",
    "NextVersionUrl",
    "NextGameVersion",
    "LatestVersion",
    "LatestVersionUrl",
    "LatestGameVersion",
    "AvailableGameVersions",
    "Jar",
    "Url",
    "ApiSource",
    "Host",
]


def compute_record_hash(row: Dict[str, str]) -> str:
    """
    Compute the content hash of a row's semantically significant fields.

    Args:
        row: Column -> value mapping (RecordHash itself is ignored)

    Returns:
        Hex SHA-256 digest
    """
    h = hashlib.sha256()
    for column in HASHED_COLUMNS:
        value = (row.get(column) or "").strip()
        h.update(f"{column}={value}\x1f".encode("utf-8"))
    return h.hexdigest()


def merge_row(existing: Dict[str, str], updates: Dict[str, str]) -> Dict[str, str]:
    """
    Apply updates to a row without disturbing untouched columns.

    Args:
        existing: Current column -> value mapping
        updates: Columns to overwrite; unknown keys are appended

    Returns:
        A new row with the original key order and a fresh RecordHash
    """
    merged = dict(existing)
    for column, value in updates.items():
        merged[column] = "" if value is None else str(value)
    merged["RecordHash"] = compute_record_hash(merged)
    return merged


class ModDatabase:
    """In-memory view of the CSV database."""

    def __init__(self, columns: Optional[List[str]] = None,
                 records: Optional[List[ModRecord]] = None,
                 path: Optional[Path] = None):
        self.columns: List[str] = list(columns or COLUMNS)
        self.records: List[ModRecord] = list(records or [])
        self.path = path
        self._ensure_columns(COLUMNS)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def _ensure_columns(self, columns: Iterable[str]) -> None:
        for column in columns:
            if column not in self.columns:
                self.columns.append(column)

    def find(self, mod_id: str, mod_type: Optional[str] = None,
             loader: Optional[str] = None) -> List[ModRecord]:
        """Find records by ID, optionally narrowed by Type and Loader."""
        wanted = mod_id.lower()
        matches = []
        for record in self.records:
            if record.id.lower() != wanted:
                continue
            if mod_type and record.type.lower() != mod_type.lower():
                continue
            if loader and record.loader.lower() != loader.lower():
                continue
            matches.append(record)
        return matches

    def add(self, record: ModRecord) -> ModRecord:
        """Append a record, enforcing ID uniqueness within Type+Loader."""
        if any(r.key == record.key for r in self.records):
            raise DuplicateRecordError(
                f"'{record.id}' ({record.type}/{record.loader}) is already in the database"
            )
        record.record_hash = compute_record_hash(record.to_row())
        self._ensure_columns(record.extras)
        self.records.append(record)
        return record

    def remove(self, mod_id: str, mod_type: Optional[str] = None,
               loader: Optional[str] = None) -> List[ModRecord]:
        """Remove matching records and return them. Other rows are untouched."""
        doomed = self.find(mod_id, mod_type, loader)
        if doomed:
            self.records = [r for r in self.records if not any(r is d for d in doomed)]
        return doomed

    def replace(self, old: ModRecord, new: ModRecord) -> None:
        """Swap a record in place, keeping its position."""
        for index, record in enumerate(self.records):
            if record is old:
                self.records[index] = new
                self._ensure_columns(new.extras)
                return
        raise KeyError(old.id)

    def rows(self) -> List[Dict[str, str]]:
        """All records as rows containing every database column."""
        result = []
        for record in self.records:
            row = record.to_row()
            result.append({column: row.get(column, "") for column in self.columns})
        return result


def load_database(path: Path) -> ModDatabase:
    """
    Load the mod database from a CSV file.

    Args:
        path: CSV file with a header row

    Returns:
        ModDatabase with the file's columns (plus any missing canonical ones)

    Raises:
        ConfigurationError: if the file does not exist
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Database file not found: {path}")

    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        columns = list(reader.fieldnames or [])
        records = [ModRecord.from_row(row) for row in reader]

    db = ModDatabase(columns=columns, records=records, path=path)
    added = [c for c in db.columns if c not in columns]
    if added:
        logger.debug("Schema grew by %d column(s): %s", len(added), ", ".join(added))
    logger.debug("Loaded %d record(s) from %s", len(records), path)
    return db


def write_database(db: ModDatabase, path: Optional[Path] = None) -> Path:
    """
    Write the whole database back to disk.

    The rows are written to a temporary file next to the target which then
    replaces it, so a failure never leaves a truncated database behind.

    Args:
        db: Database to write
        path: Target file (defaults to the path it was loaded from)

    Returns:
        The path written
    """
    target = Path(path or db.path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=db.columns, extrasaction="ignore")
            writer.writeheader()
            writer.writerows(db.rows())
        if target.exists():
            os.chmod(temp_name, target.stat().st_mode & 0o777)
        os.replace(temp_name, target)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(temp_name)
        raise

    logger.debug("Wrote %d record(s) to %s", len(db), target)
    return target


def create_database(path: Path) -> ModDatabase:
    """Create an empty database file with the canonical header."""
    db = ModDatabase(path=Path(path))
    write_database(db)
    return db
