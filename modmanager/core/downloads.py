"""Downloading mod and server JARs into the per-game-version folder layout."""

import contextlib
import logging
import os
import posixpath
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Tuple
from urllib.parse import unquote, urlparse

import requests

from .model import VERSION_SLOTS, ModRecord

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192

# Record Type -> sub-folder of <root>/<gameVersion>/
TYPE_FOLDERS = {
    "mod": "mods",
    "shader": "shaderpacks",
    "resourcepack": "resourcepacks",
    "datapack": "datapacks",
    "plugin": "plugins",
}


@dataclass
class DownloadReport:
    """What a download run did, file by file."""
    downloaded: List[Path] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)  # (name, reason)

    def merge(self, other: "DownloadReport") -> "DownloadReport":
        self.downloaded.extend(other.downloaded)
        self.skipped.extend(other.skipped)
        self.failed.extend(other.failed)
        return self

    def as_dict(self):
        return {
            "downloaded": len(self.downloaded),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
        }


def _slot_name(slot: str) -> str:
    name = slot.capitalize()
    if name not in VERSION_SLOTS:
        raise ValueError(f"Unknown version slot '{slot}', expected one of: "
                         + ", ".join(s.lower() for s in VERSION_SLOTS))
    return name


def safe_filename(name: str) -> str:
    """
    Reduce a Jar value or decoded URL basename to a bare file name.

    Any directory part (either separator style) is dropped.

    Raises:
        ValueError: if nothing usable is left
    """
    base = PurePosixPath(name.replace("\\", "/")).name
    if base in ("", ".", ".."):
        raise ValueError(f"Unsafe file name {name!r}")
    return base


def url_filename(url: str) -> str:
    """The decoded, directory-free file name at the end of a URL path."""
    return safe_filename(posixpath.basename(unquote(urlparse(url).path)))


def _folder_name(value: str) -> str:
    if safe_filename(value) != value:
        raise ValueError(f"Unsafe game version folder {value!r}")
    return value


def target_path(record: ModRecord, root: Path, slot: str = "current") -> Optional[Path]:
    """
    Where a record's file for a slot goes, or None if the slot is empty.

    Infrastructure JARs go straight into <root>/<gameVersion>/, everything
    else into the sub-folder for its Type.

    Raises:
        ValueError: for an unknown slot, or when the game version or file
            name would place the file outside root
    """
    name = _slot_name(slot)
    triple = record.slot(name)
    if not triple["url"]:
        return None
    game_version = _folder_name(triple["game_version"] or record.current_game_version or "any")

    filename = record.jar if name == "Current" and record.jar else ""
    if filename:
        filename = safe_filename(filename)
    else:
        try:
            filename = url_filename(triple["url"])
        except ValueError:
            filename = safe_filename(f"{record.id.replace('/', '-')}-{triple['version']}.jar")

    root = Path(root)
    folder = root / game_version
    if not record.is_infrastructure:
        folder = folder / TYPE_FOLDERS.get(record.type.lower(), "mods")
    dest = folder / filename
    try:
        dest.resolve().relative_to(root.resolve())
    except ValueError:
        raise ValueError(f"{dest} is outside the download folder {root}") from None
    return dest


def download_file(session: requests.Session, url: str, dest: Path, timeout: float = 60.0) -> Path:
    """
    Stream a URL to dest through a temporary file in the same folder.

    Raises:
        requests.RequestException: on network errors or HTTP error statuses
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".part", dir=str(dest.parent))
    try:
        with os.fdopen(fd, "wb") as out_file:
            with session.get(url, stream=True, timeout=timeout) as response:
                response.raise_for_status()
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        out_file.write(chunk)
        os.replace(temp_name, dest)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(temp_name)
        raise
    return dest


def _download_records(records: Iterable[ModRecord], root: Path, slot: str,
                      session: requests.Session, timeout: float) -> DownloadReport:
    report = DownloadReport()
    for record in records:
        try:
            dest = target_path(record, root, slot)
        except ValueError as e:
            logger.warning("Not downloading %s: %s", record.display_name, e)
            report.failed.append((record.display_name, str(e)))
            continue
        if dest is None:
            logger.debug("%s: no %s version to download", record.display_name, slot)
            continue
        if dest.exists():
            report.skipped.append(dest)
            continue
        url = record.slot(slot)["url"]
        try:
            download_file(session, url, dest, timeout=timeout)
        except (requests.RequestException, OSError) as e:
            logger.warning("Failed to download %s: %s", record.display_name, e)
            report.failed.append((record.display_name, str(e)))
            continue
        logger.info("Downloaded %s", dest)
        report.downloaded.append(dest)
    return report


def download_mods(records: Iterable[ModRecord], root: Path, slot: str = "current",
                  session: Optional[requests.Session] = None, timeout: float = 60.0) -> DownloadReport:
    """
    Download the selected slot of every mod-like record.

    Block-group rows and server/launcher/installer rows are left out; files
    that already exist are skipped. A failed file does not stop the run.

    Args:
        records: Database records
        root: Download folder
        slot: current, next or latest
        session: HTTP session (a new one by default)
        timeout: Per-request timeout in seconds

    Returns:
        DownloadReport
    """
    _slot_name(slot)
    wanted = [r for r in records if not r.is_blocked and not r.is_infrastructure]
    session = session or requests.Session()
    return _download_records(wanted, Path(root), slot, session, timeout)


def download_server_files(records: Iterable[ModRecord], root: Path, game_version: str,
                          session: Optional[requests.Session] = None,
                          timeout: float = 60.0) -> DownloadReport:
    """
    Download server, launcher and installer JARs for one game version.

    Whichever slot (Current, Next, Latest) of a row targets game_version is
    downloaded into <root>/<game_version>/.
    """
    session = session or requests.Session()
    report = DownloadReport()
    for record in records:
        if record.is_blocked or not record.is_infrastructure:
            continue
        slot = next((s for s in VERSION_SLOTS if record.slot(s)["game_version"] == game_version
                     and record.slot(s)["url"]), None)
        if slot is None:
            logger.debug("%s: nothing for %s", record.display_name, game_version)
            continue
        report.merge(_download_records([record], Path(root), slot.lower(), session, timeout))
    return report
