from __future__ import annotations

from pathlib import Path
from typing import Any


class LibdockError(RuntimeError):
    pass


class DownloadError(LibdockError):
    pass


class LibraryNotFoundError(LibdockError):
    def __init__(self, name: str, version: str = "") -> None:
        self.name = name
        self.version = version
        if version:
            super().__init__(f"Library {name}@{version} not found")
        else:
            super().__init__(f"Library {name} not found")


class DependencyResolutionError(LibdockError):
    """Two requirements for the same library ask for different versions."""

    def __init__(self, name: str, versions: tuple[str, ...]) -> None:
        self.name = name
        self.versions = tuple(sorted(versions))
        joined = " and ".join(self.versions)
        super().__init__(
            f"Error resolving dependencies: two different versions of the library {name} are required: {joined}"
        )


class LibraryAlreadyInstalledError(LibdockError):
    def __init__(self, name: str, installed_version: str, requested_version: str) -> None:
        self.name = name
        self.installed_version = installed_version
        self.requested_version = requested_version
        super().__init__(
            f"Library {name}@{requested_version} is already installed, "
            f"but with a different version: {name}@{installed_version}"
        )


class InstallPrerequisiteError(LibdockError):
    def __init__(self, name: str, path: Path) -> None:
        self.name = name
        self.path = path
        super().__init__(f"Cannot install {name}: destination {path} already exists and is not a library")


class LibraryInstallError(LibdockError):
    def __init__(self, library: Any, cause: BaseException | str) -> None:
        self.library = library
        self.cause = cause
        super().__init__(f"Library install failed ({library}): {cause}")


class SessionRefreshError(LibdockError):
    def __init__(self, cause: BaseException, outcome: Any = None) -> None:
        self.cause = cause
        self.outcome = outcome
        super().__init__(f"Failed to refresh installed libraries: {cause}")


class AlternateSourceConflictError(LibdockError):
    def __init__(self, name: str, path: Path) -> None:
        self.name = name
        self.path = path
        super().__init__(f"Library {name} is already installed at {path}; use overwrite to replace it")


class OperationCancelledError(LibdockError):
    pass
