"""Provider registry: maps a record's provider to a client instance."""

import logging
import re
from typing import Dict, Iterable, Optional, Tuple, Type

import requests

from ..core.errors import ConfigurationError, ModManagerError
from ..core.model import ModRecord, ProviderKind, detect_provider
from ..settings import Settings
from ..util.cache import ResponseCache
from .base import ProviderClient
from .curseforge import CurseForgeClient, slug_from_curseforge_url
from .fabric import FabricClient
from .github import GitHubClient, repo_from_github_url
from .modrinth import ModrinthClient, slug_from_modrinth_url
from .mojang import MojangClient

logger = logging.getLogger(__name__)

# Rows with an ID but no ApiSource/Host/Url are looked up here
DEFAULT_PROVIDER = ProviderKind.MODRINTH


def parse_mod_reference(value: str) -> Tuple[ProviderKind, str]:
    """
    Split a user-supplied URL or ID into (provider, mod ID).

    Accepts project URLs of every supported host, "owner/repo" GitHub
    shorthands and bare Modrinth slugs.

    Raises:
        ModManagerError: if a URL is recognised but carries no project ID
    """
    text = (value or "").strip()
    kind = detect_provider(text)

    if kind is ProviderKind.MODRINTH:
        slug = slug_from_modrinth_url(text)
    elif kind is ProviderKind.CURSEFORGE:
        slug = slug_from_curseforge_url(text)
    elif kind is ProviderKind.GITHUB:
        slug = repo_from_github_url(text)
    elif kind is None:
        if re.fullmatch(r"[\w.-]+/[\w.-]+", text):
            return ProviderKind.GITHUB, text
        return DEFAULT_PROVIDER, text
    else:
        return kind, text

    if not slug:
        raise ModManagerError(f"Could not find a project ID in '{value}'")
    return kind, slug


class ProviderRegistry:
    """Registry of provider clients sharing one cache and settings."""

    def __init__(self, settings: Settings, cache: Optional[ResponseCache] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the registry.

        Args:
            settings: Runtime settings passed to every client
            cache: Response cache shared by all clients
            session: HTTP session shared by all clients (tests pass a fake)
        """
        self.settings = settings
        self.cache = cache
        self.session = session
        self.client_classes: Dict[ProviderKind, Type[ProviderClient]] = {}
        self._clients: Dict[ProviderKind, ProviderClient] = {}
        self._load_default_providers()

    def _load_default_providers(self):
        self.register_provider(ProviderKind.MODRINTH, ModrinthClient)
        self.register_provider(ProviderKind.CURSEFORGE, CurseForgeClient)
        self.register_provider(ProviderKind.GITHUB, GitHubClient)
        self.register_provider(ProviderKind.MOJANG, MojangClient)
        self.register_provider(ProviderKind.FABRIC, FabricClient)

    def register_provider(self, kind: ProviderKind, client_class: Type[ProviderClient]):
        """
        Register (or replace) the client class for a provider.

        Args:
            kind: Provider the class serves
            client_class: ProviderClient subclass
        """
        self.client_classes[kind] = client_class
        self._clients.pop(kind, None)

    def get(self, kind: ProviderKind) -> ProviderClient:
        """
        Get the client for a provider, creating it on first use.

        Raises:
            ConfigurationError: if the provider is unsupported or misconfigured
        """
        client = self._clients.get(kind)
        if client is None:
            client_class = self.client_classes.get(kind)
            if client_class is None:
                raise ConfigurationError(f"No client registered for provider '{kind}'")
            client = client_class(self.settings, cache=self.cache, session=self.session)
            self._clients[kind] = client
        return client

    @staticmethod
    def provider_for(record: ModRecord) -> ProviderKind:
        return record.provider or DEFAULT_PROVIDER

    def client_for(self, record: ModRecord) -> ProviderClient:
        return self.get(self.provider_for(record))

    def check_configuration(self, records: Iterable[ModRecord]) -> None:
        """
        Fail fast on configuration the given records need.

        Raises:
            ConfigurationError: e.g. CurseForge rows without CURSEFORGE_API_KEY
        """
        needed = {self.provider_for(r) for r in records if r.id and r.provider is not ProviderKind.DIRECT}
        for kind in sorted(needed, key=lambda k: k.value):
            self.get(kind)
        logger.debug("Providers in use: %s", ", ".join(sorted(k.value for k in needed)) or "none")

    def close(self):
        """Close every client created so far."""
        for client in self._clients.values():
            client.close()
        self._clients.clear()
