from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterator

from .catalog import Catalog, LibraryIdentity, LibraryRelease, normalize_version_required, versions_equal
from .errors import DependencyResolutionError, LibraryNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependencyClosure:
    """
    The set of libraries a request needs, at most one entry per name.

    ``releases`` is empty when the closure was built without dependency
    expansion; the planner then resolves the root itself.
    """

    root: LibraryIdentity
    requirements: dict[str, LibraryIdentity]
    releases: dict[str, LibraryRelease] = field(default_factory=dict)

    def names(self) -> list[str]:
        return sorted(self.requirements)

    def __iter__(self) -> Iterator[LibraryIdentity]:
        for name in self.names():
            yield self.requirements[name]

    def __len__(self) -> int:
        return len(self.requirements)

    def __contains__(self, name: object) -> bool:
        return name in self.requirements


def _find(catalog: Catalog, identity: LibraryIdentity) -> LibraryRelease:
    release = catalog.find_release(identity.name, identity.version_required)
    if release is None:
        raise LibraryNotFoundError(identity.name, identity.version_required)
    return release


def resolve_dependencies(
    catalog: Catalog,
    root: LibraryIdentity,
    *,
    no_deps: bool = False,
    no_overwrite: bool = False,
    installed_version: Callable[[str], str | None] | None = None,
) -> DependencyClosure:
    """
    Expand ``root`` into the transitive closure of required libraries.

    Every requirement is resolved to a concrete catalog release before it is
    merged, so ``"latest"`` and the explicit latest version are the same
    requirement. Two requirements resolving to different versions of one
    library raise ``DependencyResolutionError``; each dependency edge is checked
    against the closure exactly once, so the outcome does not depend on
    traversal order.

    With ``no_overwrite`` set, unversioned dependencies prefer the version
    already installed when the catalog still carries it.
    """
    root = LibraryIdentity(name=root.name.strip(), version_required=normalize_version_required(root.version_required))
    if no_deps:
        return DependencyClosure(root=root, requirements={root.name: root})

    def _pick(identity: LibraryIdentity, *, is_root: bool) -> LibraryRelease:
        wanted = normalize_version_required(identity.version_required)
        if not wanted and no_overwrite and not is_root and installed_version is not None:
            current = installed_version(identity.name)
            if current:
                kept = catalog.find_release(identity.name, current)
                if kept is not None:
                    logger.debug("Keeping installed %s for unversioned dependency", kept)
                    return kept
        return _find(catalog, LibraryIdentity(name=identity.name, version_required=wanted))

    releases: dict[str, LibraryRelease] = {}
    pending: deque[tuple[LibraryIdentity, str]] = deque([(root, "")])
    while pending:
        identity, parent = pending.popleft()
        release = _pick(identity, is_root=not parent)
        existing = releases.get(identity.name)
        if existing is not None:
            if not versions_equal(existing.version, release.version):
                logger.debug(
                    "Conflict on %s: %s already selected, %s requires %s",
                    identity.name,
                    existing.version,
                    parent or "request",
                    release.version,
                )
                raise DependencyResolutionError(identity.name, (existing.version, release.version))
            continue

        releases[identity.name] = release
        logger.debug("Selected %s (required by %s)", release, parent or "request")
        for dep in sorted(catalog.dependencies_of(release), key=lambda d: d.name):
            pending.append((dep, str(release)))

    requirements = {
        name: LibraryIdentity(name=name, version_required=rel.version) for name, rel in releases.items()
    }
    return DependencyClosure(root=root, requirements=requirements, releases=releases)
