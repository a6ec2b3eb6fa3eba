"""Shared HTTP plumbing and version selection for provider clients."""

import json
import logging
import time
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

import requests

from ..core.errors import ModNotFoundError, ProviderError, TransientProviderError
from ..core.model import LOADER_AGNOSTIC_TYPES, ResolvedVersion
from ..core.versions import compare_versions, highest_version, sort_game_versions
from ..settings import Settings
from ..util.cache import ResponseCache

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def is_loader_agnostic(mod_type: Optional[str]) -> bool:
    return (mod_type or "").lower() in LOADER_AGNOSTIC_TYPES


def available_game_versions(candidates: Iterable[ResolvedVersion]) -> str:
    """Comma-joined ascending list of every game version in the candidates."""
    versions = []
    for candidate in candidates:
        versions.extend(candidate.game_versions)
    return ",".join(sort_game_versions(versions))


def _newest_first(candidates: Iterable[ResolvedVersion]) -> List[ResolvedVersion]:
    # Stable sort keeps the provider's own order for equal timestamps
    return sorted(candidates, key=lambda c: c.published or "", reverse=True)


def select_version(candidates: List[ResolvedVersion],
                   game_version: Optional[str] = None,
                   version: Optional[str] = None,
                   ceiling: Optional[str] = None) -> Optional[ResolvedVersion]:
    """
    Pick one candidate.

    Args:
        candidates: Every version the provider reported for the loader
        game_version: Only consider candidates supporting this game version
        version: Pin an exact version string; "latest" means newest stable
        ceiling: Ignore game versions above this one when game_version is unset

    Returns:
        The most recently published match (with game_version filled in),
        or None if nothing matches. Prereleases are only picked when no
        release matches.
    """
    ordered = _newest_first(candidates)

    if version and version.lower() != "latest":
        ordered = [c for c in ordered if c.version == version]

    if game_version:
        matches = [c for c in ordered if c.supports(game_version)]
        stable = [c for c in matches if not c.prerelease]
        pool = stable or matches
        if not pool:
            return None
        return replace(pool[0], game_version=game_version)

    if ceiling:
        ordered = [
            c for c in ordered
            if not c.game_versions or any(compare_versions(g, ceiling) <= 0 for g in c.game_versions)
        ]

    stable = [c for c in ordered if not c.prerelease]
    pool = stable or ordered
    if not pool:
        return None
    picked = pool[0]
    in_range = [g for g in picked.game_versions
                if not ceiling or compare_versions(g, ceiling) <= 0]
    return replace(picked, game_version=highest_version(in_range) or "")


class ProviderClient:
    """
    Base class for mod-host clients.

    Subclasses implement list_versions(); everything else (HTTP, retries,
    caching, selection) lives here.
    """

    name = "base"

    def __init__(self, settings: Settings, cache: Optional[ResponseCache] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            settings: Runtime settings (base URLs, timeouts, retry policy)
            cache: Optional response cache
            session: HTTP session (a new requests.Session by default)
        """
        self.settings = settings
        self.cache = cache
        self.session = session or requests.Session()
        self.timeout = settings.request_timeout
        self.max_retries = max(0, settings.max_retries)
        self.retry_delay = settings.retry_delay

    # ---- HTTP ----

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "User-Agent": self.settings.user_agent}

    def _sleep_before_retry(self, attempt: int, response=None) -> None:
        delay = self.retry_delay * attempt
        if response is not None:
            retry_after = response.headers.get("Retry-After")
            if retry_after and str(retry_after).isdigit():
                delay = max(delay, float(retry_after))
        if delay > 0:
            time.sleep(delay)

    def _request(self, url: str, params: Optional[Dict[str, object]] = None) -> str:
        """
        Perform a GET with bounded retries.

        Returns:
            Response body text

        Raises:
            ModNotFoundError: on HTTP 404
            TransientProviderError: when retries for 429/5xx/network errors run out
            ProviderError: on any other non-success status
        """
        attempts = self.max_retries + 1
        last_error = ""
        for attempt in range(1, attempts + 1):
            try:
                response = self.session.get(url, params=params, headers=self._headers(),
                                            timeout=self.timeout)
            except (requests.Timeout, requests.ConnectionError) as e:
                last_error = f"{type(e).__name__}: {e}"
                logger.debug("%s request failed (%d/%d): %s", self.name, attempt, attempts, last_error)
                if attempt < attempts:
                    self._sleep_before_retry(attempt)
                continue

            status = response.status_code
            if status == 404:
                raise ModNotFoundError(url, "HTTP 404")
            if status in RETRY_STATUS_CODES:
                last_error = f"HTTP {status}"
                logger.debug("%s returned %s (%d/%d) for %s", self.name, status, attempt, attempts, url)
                if attempt < attempts:
                    self._sleep_before_retry(attempt, response)
                continue
            if status >= 400:
                raise ProviderError(self.name, f"HTTP {status} for {url}", status_code=status)
            return response.text

        raise TransientProviderError(self.name, f"giving up on {url} after {attempts} attempt(s): {last_error}")

    def _get_json(self, url: str, params: Optional[Dict[str, object]] = None):
        """Fetch and decode JSON, going through the response cache when set."""
        if self.cache is not None:
            key = ResponseCache.make_key(self.name, url, params)
            body = self.cache.fetch(key, lambda: self._request(url, params), provider=self.name)
        else:
            body = self._request(url, params)
        try:
            return json.loads(body)
        except ValueError:
            raise ProviderError(self.name, f"non-JSON response from {url}")

    # ---- Resolution ----

    def list_versions(self, mod_id: str, loader: str, mod_type: str = "mod") -> List[ResolvedVersion]:
        """
        Return every version of a mod available for a loader.

        Raises:
            ModNotFoundError: if the project does not exist
        """
        raise NotImplementedError

    def finalize(self, candidate: ResolvedVersion, mod_id: str, loader: str,
                 mod_type: str = "mod") -> ResolvedVersion:
        """Fill in details only needed for a selected candidate."""
        return candidate

    def pick(self, candidates: List[ResolvedVersion], mod_id: str, loader: str,
             game_version: Optional[str] = None, *, mod_type: str = "mod",
             version: Optional[str] = None, ceiling: Optional[str] = None) -> ResolvedVersion:
        """
        Select from an already fetched listing.

        Raises:
            ModNotFoundError: if no candidate matches
        """
        picked = select_version(candidates, game_version=game_version, version=version, ceiling=ceiling)
        if picked is None:
            wanted = ", ".join(filter(None, [loader, game_version, version]))
            raise ModNotFoundError(mod_id, f"no {self.name} version for {wanted or 'any target'}")
        return self.finalize(picked, mod_id, loader, mod_type)

    def resolve(self, mod_id: str, loader: str, game_version: Optional[str] = None, *,
                mod_type: str = "mod", version: Optional[str] = None,
                ceiling: Optional[str] = None) -> ResolvedVersion:
        """
        Resolve the version of a mod for a loader and game version.

        Args:
            mod_id: Provider-specific project identifier
            loader: Mod loader (fabric, forge, ...)
            game_version: Target game version; None means newest available
            mod_type: Record Type; datapacks and similar ignore the loader
            version: Pin an exact version instead of the newest one
            ceiling: Highest game version to consider when game_version is None

        Returns:
            ResolvedVersion

        Raises:
            ModNotFoundError: nothing exists for the requested combination
            ProviderError: network, auth or payload problems
        """
        candidates = self.list_versions(mod_id, loader, mod_type)
        return self.pick(candidates, mod_id, loader, game_version,
                         mod_type=mod_type, version=version, ceiling=ceiling)

    def project_info(self, mod_id: str) -> Dict[str, str]:
        """Descriptive columns for a new record (Name, Description, ...)."""
        return {}

    def close(self) -> None:
        self.session.close()
