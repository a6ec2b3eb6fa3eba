"""Version string comparison and game-version selection helpers."""

import functools
import re
from collections import Counter
from typing import Iterable, List, Optional, Tuple

from packaging.version import InvalidVersion, Version

from .model import ModRecord

_NUMERIC_PREFIX = re.compile(r"^v?(\d+(?:\.\d+)*)(.*)$", re.IGNORECASE)
_GAME_VERSION = re.compile(r"^(\d+)\.(\d+)(?:\.(\d+))?$")


def _split_version(value: str) -> Tuple[Tuple[int, ...], str]:
    """Split '0.127.1+1.21.5' into ((0, 127, 1), '+1.21.5')."""
    match = _NUMERIC_PREFIX.match(value)
    if not match:
        raise ValueError(f"no numeric prefix in {value!r}")
    numbers = tuple(int(part) for part in match.group(1).split("."))
    return numbers, match.group(2)


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def _compare_suffixes(a: str, b: str, suffix_a: str, suffix_b: str) -> int:
    if suffix_a == suffix_b:
        return 0
    # The bare numeric version outranks any decorated one
    if not suffix_a:
        return 1
    if not suffix_b:
        return -1
    try:
        return _cmp(Version(a), Version(b))
    except InvalidVersion:
        return _cmp(suffix_a, suffix_b)


def compare_versions(a: Optional[str], b: Optional[str]) -> int:
    """
    Compare two loosely structured version strings.

    Args:
        a: First version, e.g. "1.21.5" or "0.127.1+1.21.5"
        b: Second version

    Returns:
        -1 if a < b, 0 if equal, 1 if a > b. Empty values sort lowest.
        Never raises: strings without a numeric prefix are compared
        lexicographically.
    """
    a = (a or "").strip()
    b = (b or "").strip()
    if a == b:
        return 0
    if not a:
        return -1
    if not b:
        return 1

    try:
        numbers_a, suffix_a = _split_version(a)
        numbers_b, suffix_b = _split_version(b)
    except ValueError:
        return _cmp(a, b)

    width = max(len(numbers_a), len(numbers_b))
    padded_a = numbers_a + (0,) * (width - len(numbers_a))
    padded_b = numbers_b + (0,) * (width - len(numbers_b))
    result = _cmp(padded_a, padded_b)
    if result:
        return result
    return _compare_suffixes(a, b, suffix_a, suffix_b)


version_sort_key = functools.cmp_to_key(compare_versions)


def sort_game_versions(values: Iterable[str], reverse: bool = False) -> List[str]:
    """Deduplicate and sort versions, dropping empty entries."""
    unique = {v.strip() for v in values if v and v.strip()}
    return sorted(unique, key=version_sort_key, reverse=reverse)


def highest_version(values: Iterable[str]) -> Optional[str]:
    ordered = sort_game_versions(values, reverse=True)
    return ordered[0] if ordered else None


def _mod_records(records: Iterable[ModRecord]) -> List[ModRecord]:
    return [r for r in records if not r.is_infrastructure]


def majority_game_version(records: Iterable[ModRecord]) -> Optional[str]:
    """
    Find the game version supported by the largest group of mods.

    Server, launcher and installer rows are ignored. Ties are broken in
    favour of the higher version.

    Args:
        records: Database records

    Returns:
        The majority CurrentGameVersion, or None if there are no mod records
    """
    counts = Counter(
        r.current_game_version.strip()
        for r in _mod_records(records)
        if r.current_game_version.strip()
    )
    if not counts:
        return None
    best = max(counts.values())
    return highest_version(v for v, n in counts.items() if n == best)


def next_game_version(current: Optional[str]) -> Optional[str]:
    """
    Increment the patch component of a MAJOR.MINOR[.PATCH] game version.

    "1.21.5" -> "1.21.6", "1.21" -> "1.21.1". Purely arithmetic; returns
    None for empty or malformed input.
    """
    match = _GAME_VERSION.match((current or "").strip())
    if not match:
        return None
    major, minor, patch = match.groups()
    return f"{major}.{minor}.{int(patch or 0) + 1}"


def latest_game_version(records: Iterable[ModRecord]) -> Optional[str]:
    """Highest LatestGameVersion (or CurrentGameVersion) among mod records."""
    return highest_version(
        r.latest_game_version or r.current_game_version
        for r in _mod_records(records)
    )


def is_release_game_version(value: str) -> bool:
    """True for plain release versions like 1.21.5 (no snapshots/pre-releases)."""
    return bool(_GAME_VERSION.match(value or ""))
