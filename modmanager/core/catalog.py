"""Adding, removing and listing database records."""

import logging
from typing import Dict, List, Optional

from ..integrations.base import available_game_versions
from ..integrations.registry import ProviderRegistry, parse_mod_reference
from .database import ModDatabase
from .downloads import url_filename
from .errors import ModManagerError, ModNotFoundError
from .model import ModRecord, ProviderKind, serialize_dependencies, split_dependencies
from .versions import majority_game_version

logger = logging.getLogger(__name__)

# Type used when neither the user nor the provider says otherwise
DEFAULT_TYPES = {
    ProviderKind.MOJANG: "server",
    ProviderKind.FABRIC: "launcher",
}


def _filename_from_url(url: str) -> str:
    try:
        return url_filename(url)
    except ValueError:
        raise ModManagerError(f"Cannot take a file name from {url}") from None


def _direct_record(url: str, loader: str, mod_type: str, game_version: str,
                   group: str, version: Optional[str]) -> ModRecord:
    jar = _filename_from_url(url)
    stem = jar.rsplit(".", 1)[0] if "." in jar else jar
    return ModRecord(
        group=group,
        type=mod_type,
        id=stem,
        loader=loader,
        name=stem,
        current_version=version or stem,
        current_version_url=url,
        current_game_version=game_version,
        jar=jar,
        url=url,
        api_source=ProviderKind.DIRECT.value,
        host=ProviderKind.DIRECT.value,
    )


def add_mod(db: ModDatabase, registry: ProviderRegistry, reference: str, *,
            loader: str = "fabric", mod_type: Optional[str] = None,
            game_version: Optional[str] = None, group: str = "required",
            provider: Optional[str] = None, version: Optional[str] = None,
            fields: Optional[Dict[str, str]] = None) -> ModRecord:
    """
    Add a record from a project URL, an ID or manual fields.

    The Current slot is resolved right away for the given game version (the
    database's majority game version by default). Next and Latest are left
    empty until the next validate.

    Args:
        db: Database to add to (modified in memory)
        registry: Provider clients
        reference: Project URL, provider ID, "owner/repo" or direct download URL
        loader: Mod loader
        mod_type: Record Type; taken from the provider when omitted
        game_version: Game version to resolve Current against
        group: required, optional or block
        provider: Force a provider instead of detecting it from the reference
        version: Pin a version instead of the newest one
        fields: Extra column values, applied last

    Returns:
        The new record

    Raises:
        DuplicateRecordError: the ID already exists for this Type and Loader
        ModNotFoundError: the provider has no such project or version
        ConfigurationError: the provider is not configured
        ModManagerError: a direct URL has no usable file name
    """
    if provider:
        kind = ProviderKind.parse(provider)
        if kind is None:
            raise ModNotFoundError(reference, f"unknown provider '{provider}'")
        mod_id = reference
    else:
        kind, mod_id = parse_mod_reference(reference)

    gv = game_version or majority_game_version(db.records) or ""

    if kind is ProviderKind.DIRECT:
        record = _direct_record(reference, loader, mod_type or "mod", gv, group, version)
    else:
        client = registry.get(kind)
        info = client.project_info(mod_id)
        mod_id = info.get("ID") or mod_id
        mod_type = mod_type or DEFAULT_TYPES.get(kind) or info.get("Type") or "mod"

        candidates = client.list_versions(mod_id, loader, mod_type)
        resolved = client.pick(candidates, mod_id, loader, gv or None,
                               mod_type=mod_type, version=version)
        deps = split_dependencies(resolved.dependencies)

        record = ModRecord(group=group, type=mod_type, id=mod_id, loader=loader,
                           api_source=kind.value, host=kind.value)
        for column, value in info.items():
            if column not in ("ID", "Type"):
                record.set(column, value)
        record.current_version = resolved.version
        record.current_version_url = resolved.download_url
        record.current_game_version = gv or resolved.game_version
        record.jar = resolved.jar_filename
        record.available_game_versions = available_game_versions(candidates)
        record.current_dependencies_required = serialize_dependencies(deps["required"])
        record.current_dependencies_optional = serialize_dependencies(deps["optional"])

    for column, value in (fields or {}).items():
        record.set(column, value)

    db.add(record)
    logger.info("Added %s %s (%s) for %s", record.type, record.display_name,
                record.current_version or "no version", record.current_game_version or "any game version")
    return record


def remove_mod(db: ModDatabase, mod_id: str, mod_type: Optional[str] = None,
               loader: Optional[str] = None) -> List[ModRecord]:
    """
    Remove every record matching the ID (and Type/Loader if given).

    Raises:
        ModNotFoundError: nothing matched
    """
    removed = db.remove(mod_id, mod_type, loader)
    if not removed:
        raise ModNotFoundError(mod_id, "not in the database")
    for record in removed:
        logger.info("Removed %s %s (%s)", record.type, record.display_name, record.loader)
    return removed


def list_mods(db: ModDatabase, group: Optional[str] = None, mod_type: Optional[str] = None,
              loader: Optional[str] = None) -> List[ModRecord]:
    """Records matching the filters, in database order."""
    def matches(value: str, wanted: Optional[str]) -> bool:
        return not wanted or value.lower() == wanted.lower()

    return [
        r for r in db.records
        if matches(r.group, group) and matches(r.type, mod_type) and matches(r.loader, loader)
    ]
