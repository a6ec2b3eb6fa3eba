"""GitHub releases integration."""

import re
from typing import Any, Dict, List, Optional, Tuple

from ..core.errors import ModNotFoundError
from ..core.model import ResolvedVersion
from .base import ProviderClient

# Repository name prefix -> record Type
TYPE_PREFIXES = (
    ("mod-", "mod"),
    ("shader-", "shader"),
    ("datapack-", "datapack"),
    ("resourcepack-", "resourcepack"),
    ("plugin-", "plugin"),
)

_GAME_VERSION_SUFFIX = r"(?P<game>\d+\.\d+(?:\.\d+)?)"


def repo_from_github_url(url: str) -> Optional[str]:
    """Extract "owner/repo" from a github.com URL."""
    if not url:
        return None
    m = re.search(r"github\.com/([^/\s]+)/([^/\s?#]+)", url.strip())
    if not m:
        return None
    repo = m.group(2)
    if repo.endswith(".git"):
        repo = repo[:-4]
    return f"{m.group(1)}/{repo}"


def infer_type_from_repo(repo: str) -> str:
    """
    Infer the record Type from a repository name.

    Args:
        repo: "owner/name" or just "name"

    Returns:
        "mod", "shader", "datapack", "resourcepack" or "plugin"; "mod" by default
    """
    name = repo.rsplit("/", 1)[-1].lower()
    for prefix, mod_type in TYPE_PREFIXES:
        if name.startswith(prefix):
            return mod_type
    return "mod"


def strip_type_prefix(name: str) -> str:
    lower = name.lower()
    for prefix, _ in TYPE_PREFIXES:
        if lower.startswith(prefix):
            return name[len(prefix):]
    return name


def normalize_tag(tag: str) -> str:
    return tag[1:] if tag[:1] in ("v", "V") and tag[1:2].isdigit() else tag


def select_asset(assets: List[Dict[str, Any]], version: str,
                 game_version: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Choose the JAR asset of a release.

    Tries <name>-<version>-<gameversion>.jar, then <name>-<version>.jar,
    then any .jar.
    """
    jars = [a for a in assets if (a.get("name") or "").lower().endswith(".jar")]
    if not jars:
        return None
    escaped = re.escape(version)
    if game_version:
        specific = re.compile(rf"^.+-{escaped}-{re.escape(game_version)}\.jar$", re.IGNORECASE)
        for asset in jars:
            if specific.match(asset["name"]):
                return asset
    plain = re.compile(rf"^.+-{escaped}\.jar$", re.IGNORECASE)
    for asset in jars:
        if plain.match(asset["name"]):
            return asset
    return jars[0]


def asset_game_versions(assets: List[Dict[str, Any]], version: str) -> List[str]:
    """Game versions named by <name>-<version>-<gameversion>.jar assets."""
    pattern = re.compile(rf"^.+-{re.escape(version)}-{_GAME_VERSION_SUFFIX}\.jar$", re.IGNORECASE)
    found = []
    for asset in assets:
        m = pattern.match(asset.get("name") or "")
        if m and m.group("game") not in found:
            found.append(m.group("game"))
    return found


class GitHubClient(ProviderClient):
    """GitHub REST client treating a repository's releases as versions."""

    name = "github"

    def __init__(self, settings, cache=None, session=None):
        super().__init__(settings, cache=cache, session=session)
        # owner/repo -> releases from the last listing
        self._releases: Dict[str, List[Dict[str, Any]]] = {}

    @property
    def base_url(self) -> str:
        return self.settings.github_api_base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["Accept"] = "application/vnd.github+json"
        if self.settings.github_token:
            headers["Authorization"] = f"Bearer {self.settings.github_token}"
        return headers

    def _split_repo(self, mod_id: str) -> Tuple[str, str]:
        repo = repo_from_github_url(mod_id) or mod_id
        if repo.count("/") != 1:
            raise ModNotFoundError(mod_id, "GitHub IDs must look like owner/repo")
        owner, name = repo.split("/")
        return owner, name

    def get_releases(self, mod_id: str) -> List[Dict[str, Any]]:
        """Fetch the non-draft releases of a repository."""
        owner, name = self._split_repo(mod_id)
        data = self._get_json(f"{self.base_url}/repos/{owner}/{name}/releases", {"per_page": 100})
        releases = [r for r in data or [] if isinstance(r, dict) and not r.get("draft")]
        self._releases[f"{owner}/{name}".lower()] = releases
        return releases

    def _known_releases(self, mod_id: str) -> List[Dict[str, Any]]:
        owner, name = self._split_repo(mod_id)
        releases = self._releases.get(f"{owner}/{name}".lower())
        return releases if releases is not None else self.get_releases(mod_id)

    def list_versions(self, mod_id: str, loader: str, mod_type: str = "mod") -> List[ResolvedVersion]:
        """
        One candidate per release carrying a JAR asset.

        A release without game-version-specific assets supports any game
        version. Loaders are not tracked on GitHub.
        """
        candidates = []
        for release in self.get_releases(mod_id):
            version = normalize_tag(release.get("tag_name") or "")
            assets = release.get("assets") or []
            asset = select_asset(assets, version)
            if not version or not asset:
                continue
            candidates.append(ResolvedVersion(
                version=version,
                download_url=asset.get("browser_download_url") or "",
                jar_filename=asset.get("name") or "",
                game_versions=asset_game_versions(assets, version),
                published=release.get("published_at") or release.get("created_at") or "",
                prerelease=bool(release.get("prerelease")),
                file_id=str(release.get("id") or "") or None,
            ))
        return candidates

    def finalize(self, candidate: ResolvedVersion, mod_id: str, loader: str,
                 mod_type: str = "mod") -> ResolvedVersion:
        """
        Swap in the asset built for the selected game version, if any.

        Uses the releases from the listing the candidate came from.
        """
        if not candidate.game_version or candidate.game_version not in candidate.game_versions:
            return candidate
        for release in self._known_releases(mod_id):
            if normalize_tag(release.get("tag_name") or "") != candidate.version:
                continue
            asset = select_asset(release.get("assets") or [], candidate.version, candidate.game_version)
            if asset:
                candidate.download_url = asset.get("browser_download_url") or candidate.download_url
                candidate.jar_filename = asset.get("name") or candidate.jar_filename
            break
        return candidate

    def project_info(self, mod_id: str) -> Dict[str, str]:
        owner, name = self._split_repo(mod_id)
        repo = self._get_json(f"{self.base_url}/repos/{owner}/{name}")
        html_url = repo.get("html_url") or f"https://github.com/{owner}/{name}"
        return {
            "ID": f"{owner}/{name}",
            "Name": strip_type_prefix(name),
            "Title": repo.get("name") or name,
            "Description": repo.get("description") or "",
            "Type": infer_type_from_repo(name),
            "Url": html_url,
            "IssuesUrl": f"{html_url}/issues" if repo.get("has_issues", True) else "",
            "SourceUrl": html_url,
            "WikiUrl": f"{html_url}/wiki" if repo.get("has_wiki") else "",
        }
