"""Modrinth API integration."""

import json
import re
from typing import Any, Dict, List, Optional

from ..core.model import Dependency, ResolvedVersion
from .base import ProviderClient, is_loader_agnostic

# dependency_type -> Dependency.kind; incompatible/embedded are not dependencies
DEPENDENCY_KINDS = {
    "required": "required",
    "optional": "optional",
}


def slug_from_modrinth_url(url: str) -> Optional[str]:
    """Extract the project slug from a modrinth.com project URL."""
    if not url:
        return None
    url = url.strip().rstrip("/")
    m = re.search(r"/(?:mod|modpack|plugin|datapack|shader|resourcepack|project)/([^/?#]+)", url)
    if m:
        return m.group(1)
    return None


class ModrinthClient(ProviderClient):
    """Modrinth v2 API client."""

    name = "modrinth"

    @property
    def base_url(self) -> str:
        return self.settings.modrinth_api_base_url.rstrip("/")

    def list_versions(self, mod_id: str, loader: str, mod_type: str = "mod") -> List[ResolvedVersion]:
        """
        Fetch all versions of a project for a loader.

        Args:
            mod_id: Project slug or ID
            loader: Loader name; ignored for datapacks, shaders and resource packs
            mod_type: Record Type

        Returns:
            Candidates in the order Modrinth returned them (newest first)
        """
        params = {}
        wanted = None
        if loader and not is_loader_agnostic(mod_type):
            wanted = loader.lower()
            params["loaders"] = json.dumps([wanted])
        data = self._get_json(f"{self.base_url}/project/{mod_id}/version", params or None)
        candidates = [self._to_resolved(item) for item in data or [] if isinstance(item, dict)]
        if wanted:
            candidates = [c for c in candidates
                          if not c.loaders or wanted in (l.lower() for l in c.loaders)]
        return candidates

    def _to_resolved(self, item: Dict[str, Any]) -> ResolvedVersion:
        files = [f for f in item.get("files") or [] if isinstance(f, dict)]
        primary = next((f for f in files if f.get("primary")), files[0] if files else {})

        dependencies = []
        for dep in item.get("dependencies") or []:
            if not isinstance(dep, dict):
                continue
            kind = DEPENDENCY_KINDS.get(dep.get("dependency_type"))
            if not kind or not dep.get("project_id"):
                continue
            dependencies.append(Dependency(
                project_id=dep["project_id"],
                file_id=dep.get("version_id"),
                kind=kind,
                host=self.name,
            ))

        return ResolvedVersion(
            version=item.get("version_number") or "",
            download_url=primary.get("url") or "",
            jar_filename=primary.get("filename") or "",
            game_versions=list(item.get("game_versions") or []),
            dependencies=dependencies,
            loaders=list(item.get("loaders") or []),
            published=item.get("date_published") or "",
            prerelease=(item.get("version_type") or "release") != "release",
            file_id=item.get("id"),
        )

    def get_project(self, project_id: str) -> Dict[str, Any]:
        """Get project data by slug or ID."""
        return self._get_json(f"{self.base_url}/project/{project_id}")

    def project_info(self, mod_id: str) -> Dict[str, str]:
        """
        Map Modrinth project data onto record columns.

        Args:
            mod_id: Project slug or ID

        Returns:
            Column -> value mapping for the descriptive columns
        """
        project = self.get_project(mod_id)
        slug = project.get("slug") or project.get("id") or mod_id
        project_type = project.get("project_type") or "mod"
        return {
            "ID": slug,
            "Name": project.get("title") or slug,
            "Title": project.get("title") or "",
            "Description": project.get("description") or "",
            "Category": ", ".join(project.get("categories") or []),
            "Type": project_type,
            "Url": f"https://modrinth.com/{project_type}/{slug}",
            "IconUrl": project.get("icon_url") or "",
            "ClientSide": project.get("client_side") or "",
            "ServerSide": project.get("server_side") or "",
            "IssuesUrl": project.get("issues_url") or "",
            "SourceUrl": project.get("source_url") or "",
            "WikiUrl": project.get("wiki_url") or "",
        }
