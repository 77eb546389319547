from ._version import __version__
from .catalog import IndexCatalog, LibraryIdentity, LibraryRelease, compare_versions
from .errors import (
    AlternateSourceConflictError,
    DependencyResolutionError,
    DownloadError,
    InstallPrerequisiteError,
    LibdockError,
    LibraryAlreadyInstalledError,
    LibraryInstallError,
    LibraryNotFoundError,
    OperationCancelledError,
    SessionRefreshError,
)
from .installer import (
    GitLibraryInstallRequest,
    LibraryInstallRequest,
    ZipLibraryInstallRequest,
    git_library_install,
    library_install,
    zip_library_install,
)
from .session import Session
from .store import FilesystemStore, InstalledLibrary, InstallLocation

__all__ = [
    "AlternateSourceConflictError",
    "DependencyResolutionError",
    "DownloadError",
    "FilesystemStore",
    "GitLibraryInstallRequest",
    "IndexCatalog",
    "InstallLocation",
    "InstallPrerequisiteError",
    "InstalledLibrary",
    "LibdockError",
    "LibraryAlreadyInstalledError",
    "LibraryIdentity",
    "LibraryInstallError",
    "LibraryInstallRequest",
    "LibraryNotFoundError",
    "LibraryRelease",
    "OperationCancelledError",
    "Session",
    "SessionRefreshError",
    "ZipLibraryInstallRequest",
    "__version__",
    "compare_versions",
    "git_library_install",
    "library_install",
    "zip_library_install",
]
