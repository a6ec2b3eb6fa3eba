"""CurseForge API integration."""

import logging
import re
from typing import Any, Dict, List, Optional

from ..core.errors import ConfigurationError, ModNotFoundError
from ..core.model import Dependency, ResolvedVersion
from ..core.versions import is_release_game_version
from .base import ProviderClient, is_loader_agnostic

logger = logging.getLogger(__name__)

CF_GAME_ID_MINECRAFT = 432
PAGE_SIZE = 50

# relationType values from the CurseForge API
RELATION_OPTIONAL = 2
RELATION_REQUIRED = 3

# releaseType: 1 release, 2 beta, 3 alpha
RELEASE_TYPE_RELEASE = 1

KNOWN_LOADERS = ("neoforge", "forge", "fabric", "quilt")


def slug_from_curseforge_url(url: str) -> Optional[str]:
    """Extract the project slug from a curseforge.com project URL."""
    if not url:
        return None
    m = re.search(r"curseforge\.com/minecraft/[^/]+/([^/?#]+)", url.strip())
    return m.group(1) if m else None


def edge_download_url(file_id: int, file_name: str) -> str:
    """Download URL for files whose API entry has downloadUrl set to null."""
    return f"https://edge.forgecdn.net/files/{file_id // 1000}/{file_id % 1000}/{file_name}"


class CurseForgeClient(ProviderClient):
    """CurseForge v1 API client. Requires an API key."""

    name = "curseforge"

    def __init__(self, settings, cache=None, session=None):
        if not settings.curseforge_api_key:
            raise ConfigurationError(
                "CURSEFORGE_API_KEY is not set; it is required for CurseForge mods"
            )
        super().__init__(settings, cache=cache, session=session)
        self.api_key = settings.curseforge_api_key

    @property
    def base_url(self) -> str:
        return self.settings.curseforge_api_base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["x-api-key"] = self.api_key
        return headers

    def search_mod(self, slug: str) -> Optional[dict]:
        """Find a Minecraft project by slug; None unless the slug matches exactly."""
        params = {"gameId": CF_GAME_ID_MINECRAFT, "slug": slug}
        data = self._get_json(f"{self.base_url}/mods/search", params).get("data") or []
        for mod in data:
            if isinstance(mod, dict) and (mod.get("slug") or "").lower() == slug.lower():
                return mod
        return None

    def get_mod(self, mod_id: str) -> dict:
        """
        Get project data by numeric ID or slug.

        Raises:
            ModNotFoundError: if no such project exists
        """
        if str(mod_id).isdigit():
            return self._get_json(f"{self.base_url}/mods/{mod_id}").get("data") or {}
        mod = self.search_mod(str(mod_id))
        if not mod:
            raise ModNotFoundError(str(mod_id), "no CurseForge project with that slug")
        return mod

    def get_files(self, project_id: int) -> List[dict]:
        """Fetch every file of a project, following pagination."""
        files: List[dict] = []
        index = 0
        while True:
            params = {"index": index, "pageSize": PAGE_SIZE}
            payload = self._get_json(f"{self.base_url}/mods/{project_id}/files", params)
            page = payload.get("data") or []
            files.extend(page)
            total = (payload.get("pagination") or {}).get("totalCount")
            index += len(page)
            if not page or len(page) < PAGE_SIZE or (total is not None and index >= total):
                break
        return files

    def list_versions(self, mod_id: str, loader: str, mod_type: str = "mod") -> List[ResolvedVersion]:
        """
        Fetch all files of a project usable with a loader.

        CurseForge lists loaders alongside game versions in each file's
        gameVersions array, e.g. ["1.21.5", "Fabric", "Client"].
        """
        project = self.get_mod(mod_id)
        project_id = project.get("id")
        if not project_id:
            raise ModNotFoundError(str(mod_id), "CurseForge returned no project id")

        wanted = None if is_loader_agnostic(mod_type) else (loader or "").lower() or None
        candidates = []
        for item in self.get_files(project_id):
            if not item.get("isAvailable", True):
                continue
            tags = [str(t) for t in item.get("gameVersions") or []]
            loaders = [t.lower() for t in tags if t.lower() in KNOWN_LOADERS]
            if wanted and loaders and wanted not in loaders:
                continue
            if wanted and not loaders and wanted not in (item.get("fileName") or "").lower():
                continue
            candidates.append(self._to_resolved(item, tags, loaders))
        return candidates

    def _to_resolved(self, item: Dict[str, Any], tags: List[str], loaders: List[str]) -> ResolvedVersion:
        dependencies = []
        for dep in item.get("dependencies") or []:
            relation = dep.get("relationType")
            if relation not in (RELATION_REQUIRED, RELATION_OPTIONAL):
                continue
            dependencies.append(Dependency(
                project_id=str(dep.get("modId")),
                kind="required" if relation == RELATION_REQUIRED else "optional",
                host=self.name,
            ))

        file_id = item.get("id")
        file_name = item.get("fileName") or ""
        download_url = item.get("downloadUrl")
        if not download_url and file_id and file_name:
            download_url = edge_download_url(int(file_id), file_name)

        return ResolvedVersion(
            version=item.get("displayName") or file_name,
            download_url=download_url or "",
            jar_filename=file_name,
            game_versions=[t for t in tags if is_release_game_version(t)],
            dependencies=dependencies,
            loaders=loaders,
            published=item.get("fileDate") or "",
            prerelease=item.get("releaseType", RELEASE_TYPE_RELEASE) != RELEASE_TYPE_RELEASE,
            file_id=str(file_id) if file_id else None,
        )

    def project_info(self, mod_id: str) -> Dict[str, str]:
        project = self.get_mod(mod_id)
        links = project.get("links") or {}
        logo = project.get("logo") or {}
        return {
            "ID": str(project.get("id") or mod_id),
            "Name": project.get("name") or str(mod_id),
            "Title": project.get("name") or "",
            "Description": project.get("summary") or "",
            "Category": ", ".join(c.get("name", "") for c in project.get("categories") or []),
            "Url": links.get("websiteUrl") or "",
            "IconUrl": logo.get("url") or "",
            "IssuesUrl": links.get("issuesUrl") or "",
            "SourceUrl": links.get("sourceUrl") or "",
            "WikiUrl": links.get("wikiUrl") or "",
        }
