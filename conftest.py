"""Shared fixtures: a fake HTTP session, settings and sample databases."""

import csv
import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest
import requests

from modmanager.core.model import COLUMNS
from modmanager.integrations.registry import ProviderRegistry
from modmanager.settings import Settings

MODRINTH = "https://api.modrinth.com/v2"
CURSEFORGE = "https://api.curseforge.com/v1"
GITHUB = "https://api.github.com"


class FakeResponse:
    """Just enough of requests.Response for the clients and downloads."""

    def __init__(self, status_code: int = 200, body=None, headers: Optional[Dict[str, str]] = None,
                 content: bytes = b""):
        self.status_code = status_code
        if body is None:
            self.text = ""
        elif isinstance(body, str):
            self.text = body
        else:
            self.text = json.dumps(body)
        self.headers = headers or {}
        self.content = content or self.text.encode("utf-8")

    def json(self):
        return json.loads(self.text)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)

    def iter_content(self, chunk_size: int = 8192):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """
    Serves canned responses by URL (query parameters are ignored).

    Each URL holds a queue; the last response repeats once the queue is
    down to one. Unknown URLs answer 404. Exceptions in the queue are raised.
    """

    def __init__(self):
        self.routes: Dict[str, List[object]] = {}
        self.calls: List[dict] = []

    def add(self, url: str, body=None, status: int = 200, headers: Optional[Dict[str, str]] = None,
            content: bytes = b""):
        self.routes.setdefault(url, []).append(FakeResponse(status, body, headers, content))
        return self

    def add_error(self, url: str, error: Exception):
        self.routes.setdefault(url, []).append(error)
        return self

    def get(self, url, params=None, headers=None, timeout=None, stream=False):
        self.calls.append({"url": url, "params": params, "headers": headers or {}, "timeout": timeout})
        queue = self.routes.get(url)
        if not queue:
            return FakeResponse(404, {"error": "not_found"})
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def calls_to(self, url: str) -> int:
        return sum(1 for call in self.calls if call["url"] == url)

    def close(self):
        pass


def modrinth_version(version_number: str, game_versions: List[str], loaders=("fabric",),
                     date: str = "2025-01-01T00:00:00Z", version_type: str = "release",
                     dependencies: Optional[List[dict]] = None, filename: Optional[str] = None) -> dict:
    """A Modrinth /project/{id}/version list entry."""
    filename = filename or f"mod-{version_number}.jar"
    return {
        "id": f"id-{version_number}",
        "version_number": version_number,
        "version_type": version_type,
        "game_versions": list(game_versions),
        "loaders": list(loaders),
        "date_published": date,
        "dependencies": dependencies or [],
        "files": [{"url": f"https://cdn.modrinth.com/data/x/versions/{version_number}/{filename}",
                   "filename": filename, "primary": True}],
    }


def make_row(**values) -> Dict[str, str]:
    """A database row using column names, e.g. make_row(ID="sodium")."""
    row = {column: "" for column in COLUMNS}
    row.update({"Group": "required", "Type": "mod", "Loader": "fabric", "ApiSource": "modrinth"})
    row.update(values)
    return row


def write_csv(path: Path, rows: List[Dict[str, str]], columns: Optional[List[str]] = None) -> Path:
    if columns is None:
        columns = list(rows[0].keys()) if rows else list(COLUMNS)
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        writer.writerows(rows)
    return path


def read_csv(path: Path):
    with open(path, "r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        return list(reader.fieldnames), list(reader)


FABRIC_API_VERSIONS = [
    modrinth_version("0.128.1+1.21.6", ["1.21.6"], date="2025-06-20T10:00:00Z",
                     dependencies=[{"project_id": "P7dR8mSH", "dependency_type": "optional"}]),
    modrinth_version("0.127.0+1.21.5", ["1.21.5"], date="2025-06-01T10:00:00Z"),
    modrinth_version("0.126.0+1.21.5", ["1.21.5"], date="2025-05-01T10:00:00Z"),
]

SODIUM_VERSIONS = [
    modrinth_version("mc1.21.5-0.6.13-fabric", ["1.21.5"], date="2025-05-10T10:00:00Z"),
    modrinth_version("mc1.21.5-0.6.13-neoforge", ["1.21.5"], loaders=("neoforge",),
                     date="2025-05-10T10:00:00Z"),
]


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_file=str(tmp_path / "modlist.csv"),
        api_response_folder=str(tmp_path / "apiresponse"),
        download_folder=str(tmp_path / "download"),
        curseforge_api_key="test-key",
        retry_delay=0.0,
        max_retries=2,
    )


@pytest.fixture
def registry(settings, session):
    return ProviderRegistry(settings, session=session)


@pytest.fixture
def modrinth_session(session):
    """Modrinth data for fabric-api (1.21.5 and 1.21.6) and sodium (1.21.5)."""
    session.add(f"{MODRINTH}/project/fabric-api/version", FABRIC_API_VERSIONS)
    session.add(f"{MODRINTH}/project/sodium/version", SODIUM_VERSIONS)
    return session


@pytest.fixture
def database_file(tmp_path):
    """Two Modrinth mods at 1.21.5 plus an extra column the tool does not know."""
    rows = [
        make_row(ID="fabric-api", Name="Fabric API", CurrentVersion="0.127.0+1.21.5",
                 CurrentVersionUrl="https://cdn.modrinth.com/old/fabric-api.jar",
                 CurrentGameVersion="1.21.5", Notes="keep me"),
        make_row(ID="sodium", Name="Sodium", CurrentVersion="mc1.21.5-0.6.13-fabric",
                 CurrentVersionUrl="https://cdn.modrinth.com/old/sodium.jar",
                 CurrentGameVersion="1.21.5", Notes=""),
    ]
    return write_csv(tmp_path / "modlist.csv", rows)
