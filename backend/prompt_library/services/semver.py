"""Semantic version arithmetic for prompt versions.

Only plain ``MAJOR.MINOR.PATCH`` is supported: no pre-release or build
metadata. Everything here is pure.
"""
import re
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Callable, Iterable, Literal, Optional, TypeVar

BumpType = Literal["major", "minor", "patch"]
BUMP_TYPES: tuple[str, ...] = ("major", "minor", "patch")
INITIAL_VERSION = "1.0.0"

_SEMVER_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)", re.ASCII)

T = TypeVar("T")


class InvalidVersionError(ValueError):
    """Raised when a string that must be a version does not parse."""


@dataclass(frozen=True, order=True)
class SemVer:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return format_version(self)


def parse(version: str) -> Optional[SemVer]:
    """Parse ``"X.Y.Z"``. Returns None for anything else."""
    if not isinstance(version, str):
        return None
    match = _SEMVER_RE.fullmatch(version)
    if not match:
        return None
    return SemVer(*(int(part) for part in match.groups()))


def format_version(version: SemVer) -> str:
    return f"{version.major}.{version.minor}.{version.patch}"


def is_valid(version: str) -> bool:
    return parse(version) is not None


def bump(current: str, kind: BumpType) -> Optional[str]:
    """Increment ``current`` by ``kind``. None if ``current`` is not a version."""
    parsed = parse(current)
    if parsed is None:
        return None

    if kind == "major":
        bumped = SemVer(parsed.major + 1, 0, 0)
    elif kind == "minor":
        bumped = SemVer(parsed.major, parsed.minor + 1, 0)
    elif kind == "patch":
        bumped = SemVer(parsed.major, parsed.minor, parsed.patch + 1)
    else:
        raise ValueError(f"Unknown bump type: {kind}")
    return format_version(bumped)


def _require(version: str) -> SemVer:
    parsed = parse(version)
    if parsed is None:
        raise InvalidVersionError(f"Invalid semver format: {version!r}")
    return parsed


def compare(a: str, b: str) -> int:
    """-1, 0 or 1, comparing (major, minor, patch) as integers."""
    left, right = _require(a), _require(b)
    if left == right:
        return 0
    return 1 if left > right else -1


def sort_descending(versions: Iterable[T], key: Optional[Callable[[T], str]] = None) -> list[T]:
    """Stable sort, highest version first.

    ``key`` extracts the version string when sorting objects, e.g.
    ``sort_descending(rows, key=lambda v: v.version_number)``.
    """
    get = key or (lambda item: item)
    return sorted(versions, key=cmp_to_key(lambda a, b: compare(get(b), get(a))))


def latest(versions: Iterable[str]) -> Optional[str]:
    ordered = sort_descending(versions)
    return ordered[0] if ordered else None
