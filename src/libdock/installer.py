from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Union

from .catalog import LibraryIdentity
from .errors import AlternateSourceConflictError, LibdockError, LibraryInstallError, SessionRefreshError
from .executor import BatchOutcome, CancelToken, InstallExecutor
from .planner import plan_install
from .progress import (
    DownloadEvent,
    DownloadProgressSink,
    TaskProgress,
    TaskProgressSink,
    as_download_sink,
    as_task_sink,
)
from .resolver import resolve_dependencies
from .session import Session
from .store import InstallLocation

logger = logging.getLogger(__name__)

DownloadCallback = Union[DownloadProgressSink, Callable[[DownloadEvent], None], None]
TaskCallback = Union[TaskProgressSink, Callable[[TaskProgress], None], None]


@dataclass(frozen=True)
class LibraryInstallRequest:
    name: str
    version: str = ""
    location: InstallLocation = InstallLocation.ANY_WRITABLE
    no_deps: bool = False
    no_overwrite: bool = False


@dataclass(frozen=True)
class ZipLibraryInstallRequest:
    path: Path
    overwrite: bool = False


@dataclass(frozen=True)
class GitLibraryInstallRequest:
    url: str
    overwrite: bool = False


def library_install(
    session: Session,
    req: LibraryInstallRequest,
    download_progress: DownloadCallback = None,
    task_progress: TaskCallback = None,
    *,
    cancel: CancelToken | None = None,
) -> BatchOutcome:
    """
    Resolve dependencies of the requested library, then download and install
    everything that is missing or outdated.

    Resolution and planning finish before anything is downloaded, so a conflict
    leaves the store untouched. Execution stops at the first failed library
    without undoing the ones already installed; the session is refreshed in
    every case once execution has started.
    """
    download_sink = as_download_sink(download_progress)
    task_sink = as_task_sink(task_progress)
    location = req.location

    with session.lock:
        def _installed_version(name: str) -> str | None:
            lib = session.store.installed_at(name, location)
            return lib.version if lib is not None else None

        closure = resolve_dependencies(
            session.catalog,
            LibraryIdentity(name=req.name, version_required=req.version),
            no_deps=req.no_deps,
            no_overwrite=req.no_overwrite,
            installed_version=_installed_version,
        )
        plans = plan_install(
            closure,
            location,
            catalog=session.catalog,
            store=session.store,
            no_overwrite=req.no_overwrite,
            task_progress=task_sink,
        )

        executor = InstallExecutor(session.store, session.downloader)
        outcome = executor.run(
            plans,
            requested_name=closure.root.name,
            location=location,
            download_progress=download_sink,
            task_progress=task_sink,
            cancel=cancel,
        )

        try:
            session.reinitialize()
        except SessionRefreshError as e:
            e.outcome = outcome
            raise

    outcome.raise_for_failure()
    return outcome


def _install_from_source(
    session: Session,
    task_progress: TaskCallback,
    install: Callable[[], object],
    source: str,
) -> None:
    task_sink = as_task_sink(task_progress)
    with session.lock:
        try:
            install()
        except AlternateSourceConflictError:
            raise
        except (LibdockError, OSError) as e:
            raise LibraryInstallError(source, e) from e
    task_sink.on_task(TaskProgress(message="Library installed", completed=True))


def zip_library_install(
    session: Session,
    req: ZipLibraryInstallRequest,
    task_progress: TaskCallback = None,
) -> None:
    """Install a library from a local zip archive, skipping the catalog entirely."""
    path = Path(req.path).expanduser()
    _install_from_source(
        session,
        task_progress,
        lambda: session.store.install_zip(path, overwrite=req.overwrite, location=session.default_location),
        str(path),
    )


def git_library_install(
    session: Session,
    req: GitLibraryInstallRequest,
    task_progress: TaskCallback = None,
) -> None:
    """Install a library from a git repository URL (``url#ref`` picks a branch or tag)."""
    _install_from_source(
        session,
        task_progress,
        lambda: session.store.install_from_git(
            req.url, overwrite=req.overwrite, location=session.default_location
        ),
        req.url,
    )
