"""Core data models for the mod database."""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


# Canonical column order for a freshly created database
COLUMNS = [
    "Group",
    "Type",
    "ID",
    "Loader",
    "Name",
    "Title",
    "Description",
    "Category",
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
    "ClientSide",
    "ServerSide",
    "IconUrl",
    "IssuesUrl",
    "SourceUrl",
    "WikiUrl",
    "CurrentDependenciesRequired",
    "CurrentDependenciesOptional",
    "LatestDependenciesRequired",
    "LatestDependenciesOptional",
    "RecordHash",
]

INFRASTRUCTURE_TYPES = frozenset({"server", "launcher", "installer"})

# Types whose Modrinth "loaders" are not mod loaders
LOADER_AGNOSTIC_TYPES = frozenset({"datapack", "resourcepack", "shader"})

VERSION_SLOTS = ("Current", "Next", "Latest")


def _column_to_attr(column: str) -> str:
    """CurrentVersionUrl -> current_version_url, ID -> id."""
    return re.sub(r"(?<!^)(?=[A-Z][a-z])", "_", column).lower()


COLUMN_ATTRS = {column: _column_to_attr(column) for column in COLUMNS}


class ProviderKind(Enum):
    """Where a record's version data comes from."""
    MODRINTH = "modrinth"
    CURSEFORGE = "curseforge"
    GITHUB = "github"
    MOJANG = "mojang"
    FABRIC = "fabric"
    DIRECT = "direct"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ProviderKind"]:
        """Map a free-form ApiSource/Host value to a provider, or None."""
        if not value:
            return None
        text = value.strip().lower()
        for kind in cls:
            if text == kind.value:
                return kind
        # Host columns sometimes hold a hostname
        for kind in cls:
            if kind is not cls.DIRECT and kind.value in text:
                return kind
        return None


def detect_provider(url: Optional[str]) -> Optional[ProviderKind]:
    """
    Return the provider for a project or download URL, or None if unknown.
    """
    if not url:
        return None
    u = url.lower()
    if "modrinth.com" in u:
        return ProviderKind.MODRINTH
    if "curseforge.com" in u or "forgecdn.net" in u:
        return ProviderKind.CURSEFORGE
    if "github.com" in u:
        return ProviderKind.GITHUB
    if "mojang.com" in u or "minecraft.net" in u:
        return ProviderKind.MOJANG
    if "fabricmc.net" in u:
        return ProviderKind.FABRIC
    if u.startswith(("http://", "https://")):
        return ProviderKind.DIRECT
    return None


class ResolutionStatus(Enum):
    """Per-record state during a validation pass."""
    PENDING = "pending"
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    ERRORED = "errored"

    def __str__(self) -> str:
        return self.value


@dataclass
class Dependency:
    """Represents a mod dependency reported by a provider."""
    project_id: str
    file_id: Optional[str] = None
    kind: str = "required"  # required | optional
    host: Optional[str] = None  # modrinth|curseforge|github

    @property
    def required(self) -> bool:
        return self.kind == "required"

    def to_dict(self) -> Dict[str, object]:
        return {
            "ProjectId": self.project_id,
            "FileId": self.file_id or "",
            "Required": self.required,
            "Host": self.host or "",
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "Dependency":
        return cls(
            project_id=str(data.get("ProjectId") or ""),
            file_id=str(data.get("FileId") or "") or None,
            kind="required" if data.get("Required") else "optional",
            host=str(data.get("Host") or "") or None,
        )


def serialize_dependencies(dependencies: List[Dependency]) -> str:
    """Serialize a dependency list into a single CSV field."""
    if not dependencies:
        return ""
    ordered = sorted(dependencies, key=lambda d: (d.host or "", d.project_id, d.file_id or ""))
    return json.dumps([dep.to_dict() for dep in ordered], separators=(",", ":"))


def parse_dependencies(value: Optional[str]) -> List[Dependency]:
    """
    Parse a dependency field written by serialize_dependencies.

    Older databases stored a plain comma-separated list of project IDs;
    those are read as required dependencies with no host.
    """
    text = (value or "").strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            data = json.loads(text)
        except ValueError:
            data = None
        if isinstance(data, list):
            return [Dependency.from_dict(item) for item in data if isinstance(item, dict)]
    return [Dependency(project_id=item.strip()) for item in text.split(",") if item.strip()]


def split_dependencies(dependencies: List[Dependency]) -> Dict[str, List[Dependency]]:
    """Group dependencies into required and optional lists."""
    return {
        "required": [d for d in dependencies if d.required],
        "optional": [d for d in dependencies if not d.required],
    }


@dataclass
class ModRecord:
    """One row of the mod database."""
    group: str = "required"  # required | optional | block
    type: str = "mod"
    id: str = ""
    loader: str = ""
    name: str = ""
    title: str = ""
    description: str = ""
    category: str = ""
    current_version: str = ""
    current_version_url: str = ""
    current_game_version: str = ""
    next_version: str = ""
    next_version_url: str = ""
    next_game_version: str = ""
    latest_version: str = ""
    latest_version_url: str = ""
    latest_game_version: str = ""
    available_game_versions: str = ""
    jar: str = ""
    url: str = ""
    api_source: str = ""
    host: str = ""
    client_side: str = ""
    server_side: str = ""
    icon_url: str = ""
    issues_url: str = ""
    source_url: str = ""
    wiki_url: str = ""
    current_dependencies_required: str = ""
    current_dependencies_optional: str = ""
    latest_dependencies_required: str = ""
    latest_dependencies_optional: str = ""
    record_hash: str = ""

    # Columns this version of the tool does not know about
    extras: Dict[str, str] = field(default_factory=dict)
    provider: Optional[ProviderKind] = None

    def __post_init__(self):
        if self.provider is None:
            self.provider = self._detect_provider()

    def _detect_provider(self) -> Optional[ProviderKind]:
        return (ProviderKind.parse(self.api_source)
                or ProviderKind.parse(self.host)
                or detect_provider(self.url))

    @classmethod
    def from_row(cls, row: Dict[str, Optional[str]]) -> "ModRecord":
        """Build a record from a CSV row; missing columns read as empty."""
        known = {attr: "" for attr in COLUMN_ATTRS.values()}
        extras = {}
        for column, value in row.items():
            if column is None:
                continue
            text = "" if value is None else str(value)
            attr = COLUMN_ATTRS.get(column)
            if attr:
                known[attr] = text
            else:
                extras[column] = text
        return cls(extras=extras, **known)

    def to_row(self) -> Dict[str, str]:
        """Return the record as a column -> value mapping, extras included."""
        row = {column: getattr(self, attr) for column, attr in COLUMN_ATTRS.items()}
        row.update(self.extras)
        return row

    def get(self, column: str) -> str:
        attr = COLUMN_ATTRS.get(column)
        if attr:
            return getattr(self, attr)
        return self.extras.get(column, "")

    def set(self, column: str, value: str) -> None:
        """Set a column by name; ApiSource, Host and Url re-detect the provider."""
        attr = COLUMN_ATTRS.get(column)
        if attr:
            setattr(self, attr, value)
            if attr in ("api_source", "host", "url"):
                self.provider = self._detect_provider()
        else:
            self.extras[column] = value

    @property
    def key(self) -> tuple:
        """Uniqueness key: ID within Type and Loader."""
        return (self.id.lower(), self.type.lower(), self.loader.lower())

    @property
    def is_infrastructure(self) -> bool:
        return self.type.lower() in INFRASTRUCTURE_TYPES

    @property
    def is_blocked(self) -> bool:
        return self.group.lower() == "block"

    @property
    def display_name(self) -> str:
        return self.name or self.title or self.id

    def slot(self, name: str) -> Dict[str, str]:
        """Return the (version, url, game version) triple for Current/Next/Latest."""
        prefix = name.capitalize()
        return {
            "version": self.get(f"{prefix}Version"),
            "url": self.get(f"{prefix}VersionUrl"),
            "game_version": self.get(f"{prefix}GameVersion"),
        }


@dataclass
class ResolvedVersion:
    """A provider's answer for one version of a mod."""
    version: str
    download_url: str
    jar_filename: str = ""
    game_versions: List[str] = field(default_factory=list)
    dependencies: List[Dependency] = field(default_factory=list)
    loaders: List[str] = field(default_factory=list)
    published: str = ""  # ISO-8601 timestamp
    prerelease: bool = False
    game_version: str = ""  # the game version this result was selected for
    file_id: Optional[str] = None

    def supports(self, game_version: str) -> bool:
        # No game-version information means "any"
        return not self.game_versions or game_version in self.game_versions
