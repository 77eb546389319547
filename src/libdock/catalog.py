from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from functools import cmp_to_key
from pathlib import Path
from typing import Any, Iterable, Protocol, Sequence

from .errors import LibdockError

logger = logging.getLogger(__name__)

_LATEST_ALIASES = ("", "latest", "*")


def normalize_version_required(value: str | None) -> str:
    """Return "" for unconstrained-latest requirements, the trimmed version otherwise."""
    raw = (value or "").strip()
    return "" if raw.lower() in _LATEST_ALIASES else raw


@dataclass(frozen=True)
class LibraryIdentity:
    name: str
    version_required: str = ""

    def __str__(self) -> str:
        if self.version_required:
            return f"{self.name}@{self.version_required}"
        return self.name


@dataclass(frozen=True)
class LibraryRelease:
    name: str
    version: str
    author: str = ""
    url: str = ""
    archive_filename: str = ""
    size: int = 0
    checksum: str = ""
    dependencies: tuple[LibraryIdentity, ...] = ()

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"

    @property
    def archive_name(self) -> str:
        """File name of the release archive inside the downloads directory."""
        if self.archive_filename:
            return os.path.basename(self.archive_filename)
        return f"{self.name}-{self.version}.zip".replace(" ", "_")


class Catalog(Protocol):
    def find_release(self, name: str, version_required: str) -> LibraryRelease | None:
        ...

    def dependencies_of(self, release: LibraryRelease) -> Sequence[LibraryIdentity]:
        ...


def _version_key(version: str) -> tuple[Any, ...] | None:
    """
    Sort key for dotted numeric versions with an optional ``-pre.release`` tag.

    Trailing zero components are dropped so ``1.0`` and ``1.0.0`` share a key,
    and a release sorts after all of its pre-releases. Returns None for
    versions that are not in this form.
    """
    raw = version.strip().split("+", 1)[0]
    core, sep, pre = raw.partition("-")
    parts = core.split(".")
    if not core or not all(p.isdigit() for p in parts):
        return None
    nums = [int(p) for p in parts]
    while nums and nums[-1] == 0:
        nums.pop()
    if not sep:
        return (tuple(nums), 1, ())
    # Numeric identifiers sort before alphanumeric ones.
    ids = tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in pre.split(".") if p)
    return (tuple(nums), 0, ids)


def compare_versions(a: str, b: str) -> int:
    ka, kb = _version_key(a), _version_key(b)
    if ka is None or kb is None:
        sa, sb = a.strip(), b.strip()
        return (sa > sb) - (sa < sb)
    return (ka > kb) - (ka < kb)


def versions_equal(a: str, b: str) -> bool:
    return compare_versions(a, b) == 0


def _parse_dependency(raw: Any) -> LibraryIdentity | None:
    if isinstance(raw, str):
        spec = raw.strip()
        if not spec:
            return None
        name, _, version = spec.partition("@")
        return LibraryIdentity(name=name.strip(), version_required=normalize_version_required(version))
    if not isinstance(raw, dict):
        return None
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    version = raw.get("version")
    return LibraryIdentity(
        name=name.strip(),
        version_required=normalize_version_required(version if isinstance(version, str) else None),
    )


def parse_release(obj: Any) -> LibraryRelease | None:
    if not isinstance(obj, dict):
        return None
    name = obj.get("name")
    version = obj.get("version")
    if not isinstance(name, str) or not name.strip():
        return None
    if not isinstance(version, str) or not version.strip():
        return None

    deps: list[LibraryIdentity] = []
    deps_raw = obj.get("dependencies")
    if isinstance(deps_raw, list):
        for dep_raw in deps_raw:
            dep = _parse_dependency(dep_raw)
            if dep is not None:
                deps.append(dep)

    size = obj.get("size")
    return LibraryRelease(
        name=name.strip(),
        version=version.strip(),
        author=str(obj.get("author") or ""),
        url=str(obj.get("url") or "").strip(),
        archive_filename=str(obj.get("archiveFileName") or "").strip(),
        size=size if isinstance(size, int) and size > 0 else 0,
        checksum=str(obj.get("checksum") or "").strip(),
        dependencies=tuple(deps),
    )


class IndexCatalog:
    """In-memory catalog of library releases, keyed by library name."""

    def __init__(self, releases: Iterable[LibraryRelease] = ()) -> None:
        self._by_name: dict[str, list[LibraryRelease]] = {}
        for rel in releases:
            self.add(rel)

    @classmethod
    def from_file(cls, path: Path) -> "IndexCatalog":
        path = Path(path).expanduser()
        if not path.exists():
            raise LibdockError(f"Library index not found: {path}")
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise LibdockError(f"Could not read library index {path}: {e}") from e
        items = raw.get("libraries") if isinstance(raw, dict) else raw
        if not isinstance(items, list):
            raise LibdockError(f"Library index {path} has no 'libraries' list")

        catalog = cls()
        skipped = 0
        for item in items:
            rel = parse_release(item)
            if rel is None:
                skipped += 1
                continue
            catalog.add(rel)
        if skipped:
            logger.warning("Skipped %d malformed entries in %s", skipped, path)
        return catalog

    def add(self, release: LibraryRelease) -> None:
        releases = self._by_name.setdefault(release.name, [])
        releases[:] = [r for r in releases if not versions_equal(r.version, release.version)]
        releases.append(release)
        releases.sort(key=cmp_to_key(lambda a, b: compare_versions(a.version, b.version)), reverse=True)

    def library_names(self) -> list[str]:
        return sorted(self._by_name)

    def releases_of(self, name: str) -> list[LibraryRelease]:
        return list(self._by_name.get(name, []))

    def find_release(self, name: str, version_required: str) -> LibraryRelease | None:
        releases = self._by_name.get(name)
        if not releases:
            return None
        wanted = normalize_version_required(version_required)
        if not wanted:
            return releases[0]
        for rel in releases:
            if versions_equal(rel.version, wanted):
                return rel
        return None

    def dependencies_of(self, release: LibraryRelease) -> Sequence[LibraryIdentity]:
        return release.dependencies
