from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .catalog import Catalog, LibraryIdentity, LibraryRelease, versions_equal
from .errors import InstallPrerequisiteError, LibraryAlreadyInstalledError, LibraryNotFoundError
from .progress import TaskProgress, TaskProgressSink
from .resolver import DependencyClosure
from .store import InstalledLibrary, InstallLocation, Store, is_library_dir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallPlan:
    release: LibraryRelease
    target_path: Path
    replaced: InstalledLibrary | None = None
    up_to_date: bool = False


def _release_for(closure: DependencyClosure, identity: LibraryIdentity, catalog: Catalog) -> LibraryRelease:
    release = closure.releases.get(identity.name)
    if release is not None:
        return release
    release = catalog.find_release(identity.name, identity.version_required)
    if release is None:
        raise LibraryNotFoundError(identity.name, identity.version_required)
    return release


def check_prerequisites(release: LibraryRelease, location: InstallLocation, store: Store) -> InstallPlan:
    """Decide what installing ``release`` at ``location`` would take, without touching anything."""
    target = store.target_path(release.name, location)
    installed = store.installed_at(release.name, location)
    if installed is None:
        if target.exists() and not is_library_dir(target):
            raise InstallPrerequisiteError(release.name, target)
        return InstallPlan(release=release, target_path=target)
    if versions_equal(installed.version, release.version):
        return InstallPlan(release=release, target_path=installed.path, replaced=installed, up_to_date=True)
    return InstallPlan(release=release, target_path=target, replaced=installed)


def plan_install(
    closure: DependencyClosure,
    location: InstallLocation,
    *,
    catalog: Catalog,
    store: Store,
    no_overwrite: bool,
    task_progress: TaskProgressSink,
) -> list[InstallPlan]:
    """
    Build one plan per closure entry, in name order.

    Any failure aborts the whole batch before a single plan is returned.
    Up-to-date entries are announced right away.
    """
    plans: list[InstallPlan] = []
    for identity in closure:
        release = _release_for(closure, identity, catalog)
        plan = check_prerequisites(release, location, store)
        if plan.up_to_date:
            logger.debug("%s is up to date at %s", release, plan.target_path)
            task_progress.on_task(TaskProgress(message=f"Already installed {release}", completed=True))
        elif plan.replaced is not None and no_overwrite:
            raise LibraryAlreadyInstalledError(release.name, plan.replaced.version, release.version)
        plans.append(plan)
    return plans
