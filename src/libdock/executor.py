from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from .catalog import LibraryRelease
from .client import Downloader
from .errors import LibdockError, LibraryInstallError, OperationCancelledError
from .planner import InstallPlan
from .progress import DownloadProgress, DownloadProgressSink, TaskProgress, TaskProgressSink
from .store import InstallLocation, Store

logger = logging.getLogger(__name__)

STATUS_INSTALLED = "installed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


class CancelToken(Protocol):
    def is_set(self) -> bool:
        ...


def install_reason(plan: InstallPlan, *, requested_name: str, location: InstallLocation) -> str:
    if plan.release.name != requested_name:
        return "depends"
    reason = "upgrade" if plan.replaced is not None else "install"
    if location is InstallLocation.BUILTIN:
        reason += "-builtin"
    return reason


@dataclass(frozen=True)
class LibraryResult:
    release: LibraryRelease
    reason: str
    status: str
    error: LibdockError | None = None


@dataclass
class BatchOutcome:
    results: list[LibraryResult] = field(default_factory=list)

    @property
    def installed(self) -> list[LibraryResult]:
        return [r for r in self.results if r.status == STATUS_INSTALLED]

    @property
    def failed(self) -> list[LibraryResult]:
        return [r for r in self.results if r.status == STATUS_FAILED]

    @property
    def skipped(self) -> list[LibraryResult]:
        return [r for r in self.results if r.status == STATUS_SKIPPED]

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failure(self) -> None:
        for result in self.results:
            if result.error is not None:
                raise result.error


class InstallExecutor:
    """
    Downloads and installs planned libraries one at a time.

    The batch stops at the first library that fails; libraries installed
    before it stay installed and the rest are reported as skipped.
    """

    def __init__(self, store: Store, downloader: Downloader) -> None:
        self.store = store
        self.downloader = downloader

    def run(
        self,
        plans: Sequence[InstallPlan],
        *,
        requested_name: str,
        location: InstallLocation,
        download_progress: DownloadProgressSink,
        task_progress: TaskProgressSink,
        cancel: CancelToken | None = None,
    ) -> BatchOutcome:
        outcome = BatchOutcome()
        pending = [p for p in plans if not p.up_to_date]
        for idx, plan in enumerate(pending):
            reason = install_reason(plan, requested_name=requested_name, location=location)
            try:
                self._check_cancelled(cancel)
                self._download(plan, reason, download_progress)
                self._check_cancelled(cancel)
                self._install(plan, task_progress)
            except LibdockError as e:
                logger.warning("Install of %s stopped: %s", plan.release, e)
                outcome.results.append(LibraryResult(plan.release, reason, STATUS_FAILED, e))
                for rest in pending[idx + 1 :]:
                    rest_reason = install_reason(rest, requested_name=requested_name, location=location)
                    outcome.results.append(LibraryResult(rest.release, rest_reason, STATUS_SKIPPED))
                break
            outcome.results.append(LibraryResult(plan.release, reason, STATUS_INSTALLED))
        return outcome

    @staticmethod
    def _check_cancelled(cancel: CancelToken | None) -> None:
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError("Operation cancelled")

    def _download(self, plan: InstallPlan, reason: str, sink: DownloadProgressSink) -> None:
        logger.info("Downloading library %s (%s)", plan.release, reason)
        try:
            self.downloader.download(plan.release, DownloadProgress(sink))
        except (LibdockError, OSError) as e:
            raise LibraryInstallError(plan.release, e) from e

    def _install(self, plan: InstallPlan, sink: TaskProgressSink) -> None:
        release = plan.release
        sink.on_task(TaskProgress(name=f"Installing {release}"))
        logger.info("Installing library %s", release)

        replaced = plan.replaced
        if replaced is not None:
            sink.on_task(TaskProgress(message=f"Replacing {replaced} with {release}"))
            try:
                self.store.uninstall(replaced)
            except (LibdockError, OSError) as e:
                raise LibraryInstallError(release, f"could not remove old library: {e}") from e

        try:
            self.store.install(release, plan.target_path)
        except (LibdockError, OSError) as e:
            raise LibraryInstallError(release, e) from e

        sink.on_task(TaskProgress(message=f"Installed {release}", completed=True))
