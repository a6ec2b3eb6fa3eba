"""Mojang version manifest: official server JARs."""

from typing import Dict, List

from ..core.errors import ModNotFoundError
from ..core.model import ResolvedVersion
from .base import ProviderClient


class MojangClient(ProviderClient):
    """Resolves vanilla server JAR URLs from the launcher version manifest."""

    name = "mojang"

    def __init__(self, settings, cache=None, session=None):
        super().__init__(settings, cache=cache, session=session)
        self._packages: Dict[str, dict] = {}

    def get_manifest(self) -> dict:
        """Fetch the master list of versions."""
        return self._get_json(self.settings.mojang_manifest_url)

    def list_versions(self, mod_id: str, loader: str, mod_type: str = "server") -> List[ResolvedVersion]:
        """
        One candidate per release in the manifest.

        Snapshots and old alphas are skipped. Download URLs are filled in
        by finalize().
        """
        manifest = self.get_manifest()
        candidates = []
        for entry in manifest.get("versions") or []:
            version_id = entry.get("id")
            if not version_id or entry.get("type") != "release":
                continue
            candidates.append(ResolvedVersion(
                version=version_id,
                download_url=entry.get("url") or "",  # version package, not the JAR
                jar_filename=f"minecraft_server.{version_id}.jar",
                game_versions=[version_id],
                published=entry.get("releaseTime") or "",
            ))
        return candidates

    def get_package(self, url: str) -> dict:
        """Fetch a version package, once per URL for the life of the client."""
        if url not in self._packages:
            self._packages[url] = self._get_json(url)
        return self._packages[url]

    def finalize(self, candidate: ResolvedVersion, mod_id: str, loader: str,
                 mod_type: str = "server") -> ResolvedVersion:
        """
        Replace the version package URL with the server JAR URL.

        Raises:
            ModNotFoundError: for versions without a public server download
        """
        package = self.get_package(candidate.download_url)
        server = (package.get("downloads") or {}).get("server") or {}
        if not server.get("url"):
            raise ModNotFoundError(candidate.version, "no server.jar published for this version")
        candidate.download_url = server["url"]
        candidate.file_id = server.get("sha1")
        return candidate
