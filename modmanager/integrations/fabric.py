"""Fabric Meta API: server launcher and installer JARs."""

from typing import List, Optional

from ..core.errors import ModNotFoundError
from ..core.model import ResolvedVersion
from .base import ProviderClient


def _first_stable(entries: List[dict], key: Optional[str] = None) -> Optional[dict]:
    """Newest stable entry (the API lists newest first), else the newest."""
    items = [e.get(key) if key else e for e in entries]
    items = [i for i in items if isinstance(i, dict)]
    for item in items:
        if item.get("stable"):
            return item
    return items[0] if items else None


class FabricClient(ProviderClient):
    """Resolves Fabric server launcher (Type server/launcher) and installer JARs."""

    name = "fabric"

    @property
    def base_url(self) -> str:
        return self.settings.fabric_meta_base_url.rstrip("/")

    def get_game_versions(self) -> List[dict]:
        """GET /v2/versions/game"""
        return self._get_json(f"{self.base_url}/v2/versions/game") or []

    def get_loader_versions(self, game_version: str) -> List[dict]:
        """GET /v2/versions/loader/{game_version}"""
        return self._get_json(f"{self.base_url}/v2/versions/loader/{game_version}") or []

    def get_installer_versions(self) -> List[dict]:
        """GET /v2/versions/installer"""
        return self._get_json(f"{self.base_url}/v2/versions/installer") or []

    def list_versions(self, mod_id: str, loader: str, mod_type: str = "server") -> List[ResolvedVersion]:
        """
        One candidate per stable game version Fabric supports.

        The loader and installer versions are only known once a game
        version is chosen, see finalize().
        """
        candidates = []
        # No dates here; the API order (newest first) is kept
        for entry in self.get_game_versions():
            game = entry.get("version")
            if not game or not entry.get("stable", False):
                continue
            candidates.append(ResolvedVersion(
                version=game,
                download_url="",
                game_versions=[game],
            ))
        return candidates

    def _server_url(self, game: str, loader: str, installer: str) -> str:
        return f"{self.base_url}/v2/versions/loader/{game}/{loader}/{installer}/server/jar"

    def finalize(self, candidate: ResolvedVersion, mod_id: str, loader: str,
                 mod_type: str = "server") -> ResolvedVersion:
        """
        Build the download URL for the selected game version.

        Raises:
            ModNotFoundError: if Fabric has no loader or installer build
        """
        game = candidate.version
        installer = _first_stable(self.get_installer_versions())
        if not installer:
            raise ModNotFoundError(mod_id, "Fabric lists no installer builds")

        if (mod_type or "").lower() == "installer":
            candidate.version = installer.get("version") or ""
            candidate.download_url = installer.get("url") or ""
            candidate.jar_filename = f"fabric-installer-{candidate.version}.jar"
            return candidate

        loader_entry = _first_stable(self.get_loader_versions(game), key="loader")
        if not loader_entry:
            raise ModNotFoundError(mod_id, f"no Fabric loader for {game}")
        loader_version = loader_entry.get("version") or ""
        installer_version = installer.get("version") or ""
        candidate.version = loader_version
        candidate.download_url = self._server_url(game, loader_version, installer_version)
        candidate.jar_filename = (
            f"fabric-server-mc.{game}-loader.{loader_version}-launcher.{installer_version}.jar"
        )
        return candidate
