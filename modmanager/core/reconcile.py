"""Reconciliation of database rows against live provider data."""

import logging
import warnings
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional, Tuple

import requests

from ..integrations.base import ProviderClient, available_game_versions
from ..integrations.registry import ProviderRegistry
from .database import ModDatabase, compute_record_hash, merge_row
from .errors import DataIntegrityWarning, ModManagerError, ModNotFoundError
from .model import (ModRecord, ProviderKind, ResolutionStatus, ResolvedVersion,
                    serialize_dependencies, split_dependencies)
from .versions import latest_game_version, majority_game_version, next_game_version

logger = logging.getLogger(__name__)


@dataclass
class RowResult:
    """Outcome of reconciling one record."""
    record: ModRecord
    status: ResolutionStatus = ResolutionStatus.PENDING
    changes: Dict[str, Tuple[str, str]] = field(default_factory=dict)  # column -> (old, new)
    error: Optional[str] = None
    update_available: bool = False
    supports_next: Optional[bool] = None
    externally_modified: bool = False
    row_changed: bool = False  # anything at all differs, RecordHash included

    @property
    def updated(self) -> bool:
        return bool(self.changes)


@dataclass
class ValidationSummary:
    """Aggregate counts for one validate/update pass."""
    total: int = 0
    updated: int = 0
    supporting_latest: int = 0
    update_available: int = 0
    not_supporting_latest: int = 0
    unchanged: int = 0
    externally_modified: int = 0
    not_found: int = 0
    errored: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class ValidationReport:
    """Per-row results plus the summary of a pass."""
    rows: List[RowResult]
    summary: ValidationSummary
    next_game_version: Optional[str] = None
    latest_game_version: Optional[str] = None

    @property
    def changed(self) -> bool:
        return any(r.row_changed for r in self.rows)


def _slot_updates(prefix: str, resolved: Optional[ResolvedVersion],
                  game_version: Optional[str] = None) -> Dict[str, str]:
    """Version/URL/game version for a slot; empty strings clear it."""
    if resolved is None:
        return {f"{prefix}Version": "", f"{prefix}VersionUrl": "", f"{prefix}GameVersion": ""}
    return {
        f"{prefix}Version": resolved.version,
        f"{prefix}VersionUrl": resolved.download_url,
        f"{prefix}GameVersion": game_version or resolved.game_version or "",
    }


def _dependency_updates(prefix: str, resolved: Optional[ResolvedVersion]) -> Dict[str, str]:
    grouped = split_dependencies(resolved.dependencies if resolved else [])
    return {
        f"{prefix}DependenciesRequired": serialize_dependencies(grouped["required"]),
        f"{prefix}DependenciesOptional": serialize_dependencies(grouped["optional"]),
    }


class ReconciliationEngine:
    """Re-resolves the Current/Next/Latest slots of every database row."""

    def __init__(self, registry: ProviderRegistry, apply_updates: bool = False,
                 target_game_version: Optional[str] = None,
                 latest_ceiling: Optional[str] = None):
        """
        Initialize the engine.

        Args:
            registry: Provider clients to resolve with
            apply_updates: Replace Current* with the newest version for the
                current game version ("update"); otherwise only report it
            target_game_version: Game version for the Next slot; defaults to
                the patch after the majority game version
            latest_ceiling: Highest game version the Latest slot may use
        """
        self.registry = registry
        self.apply_updates = apply_updates
        self.target_game_version = target_game_version
        self.latest_ceiling = latest_ceiling

    def validate(self, db: ModDatabase) -> ValidationReport:
        """
        Reconcile every row of the database in place.

        Rows are processed one at a time; a failing row is recorded and the
        pass continues. The database is modified in memory only.

        Args:
            db: Loaded database

        Returns:
            ValidationReport with one RowResult per row

        Raises:
            ConfigurationError: before any row is processed, if a provider
                the rows need is not configured
        """
        self.registry.check_configuration(db.records)

        next_target = self.target_game_version or next_game_version(majority_game_version(db.records))
        logger.info("Validating %d record(s); next game version: %s", len(db), next_target or "n/a")

        results = []
        for record in list(db.records):
            result = self._reconcile_row(record, next_target)
            if result.record is not record:
                db.replace(record, result.record)
            results.append(result)

        latest = latest_game_version(db.records)
        summary = self._summarize(results, latest)
        return ValidationReport(rows=results, summary=summary,
                                next_game_version=next_target, latest_game_version=latest)

    def _reconcile_row(self, record: ModRecord, next_target: Optional[str]) -> RowResult:
        result = RowResult(record=record)
        original = record.to_row()

        if record.provider is ProviderKind.DIRECT or not record.id:
            updates: Dict[str, str] = {}
        else:
            client = self.registry.client_for(record)
            try:
                updates = self._resolve_slots(client, record, next_target, result)
            except ModNotFoundError as e:
                result.status = ResolutionStatus.NOT_FOUND
                result.error = str(e)
                logger.debug("%s: not found: %s", record.display_name, e)
                return result
            except (ModManagerError, requests.RequestException, OSError,
                    ValueError, KeyError, TypeError, AttributeError) as e:
                result.status = ResolutionStatus.ERRORED
                result.error = str(e)
                logger.debug("%s: failed: %s", record.display_name, e, exc_info=True)
                return result

        result.status = ResolutionStatus.RESOLVED
        self._apply(result, original, updates)
        return result

    def _resolve_slots(self, client: ProviderClient, record: ModRecord,
                       next_target: Optional[str], result: RowResult) -> Dict[str, str]:
        """Resolve Current, Next and Latest from a single provider listing."""
        candidates = client.list_versions(record.id, record.loader, record.type)
        updates = {"AvailableGameVersions": available_game_versions(candidates)}

        # Current: NotFound here makes the whole row NOT_FOUND
        current_gv = record.current_game_version or None
        current = client.pick(candidates, record.id, record.loader, current_gv, mod_type=record.type)
        stored_version = record.current_version
        if stored_version and current.version != stored_version:
            result.update_available = True
        if not stored_version or self.apply_updates or current.version == stored_version:
            updates.update(_slot_updates("Current", current, current_gv))
            updates.update(_dependency_updates("Current", current))
            if current.jar_filename:
                updates["Jar"] = current.jar_filename

        if next_target:
            try:
                nxt = client.pick(candidates, record.id, record.loader, next_target, mod_type=record.type)
            except ModNotFoundError:
                nxt = None
            result.supports_next = nxt is not None
            updates.update(_slot_updates("Next", nxt, next_target))

        try:
            latest = client.pick(candidates, record.id, record.loader, None,
                                 mod_type=record.type, ceiling=self.latest_ceiling)
        except ModNotFoundError:
            latest = None
        updates.update(_slot_updates("Latest", latest))
        updates.update(_dependency_updates("Latest", latest))
        return updates

    def _apply(self, result: RowResult, original: Dict[str, str], updates: Dict[str, str]) -> None:
        """Merge updates into the record and classify the row."""
        record = result.record
        stored_hash = record.record_hash
        tampered = bool(stored_hash) and stored_hash != compute_record_hash(original)

        merged = merge_row(original, updates)
        result.changes = {
            column: (original.get(column, ""), merged[column])
            for column in updates
            if original.get(column, "") != merged[column]
        }
        result.externally_modified = tampered and not result.changes
        result.row_changed = merged != original

        if result.row_changed:
            result.record = ModRecord.from_row(merged)
        if result.externally_modified:
            warnings.warn(
                f"{record.display_name}: RecordHash does not match the row; it was edited outside modmanager",
                DataIntegrityWarning,
                stacklevel=2,
            )
        for column, (old, new) in result.changes.items():
            logger.debug("%s: %s %r -> %r", record.display_name, column, old, new)

    @staticmethod
    def _summarize(results: List[RowResult], latest: Optional[str]) -> ValidationSummary:
        summary = ValidationSummary(total=len(results))
        for result in results:
            if result.status is ResolutionStatus.NOT_FOUND:
                summary.not_found += 1
                continue
            if result.status is ResolutionStatus.ERRORED:
                summary.errored += 1
                continue

            if result.updated:
                summary.updated += 1
            elif result.externally_modified:
                summary.externally_modified += 1
            else:
                summary.unchanged += 1

            if result.update_available:
                summary.update_available += 1

            record = result.record
            if record.provider is ProviderKind.DIRECT or not record.id or not latest:
                continue
            available = [v for v in record.available_game_versions.split(",") if v]
            if not available or latest in available:
                summary.supporting_latest += 1
            else:
                summary.not_supporting_latest += 1
        return summary
