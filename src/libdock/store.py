from __future__ import annotations

import enum
import logging
import re
import shutil
import subprocess
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import urlsplit, urlunsplit

from .catalog import LibraryRelease
from .errors import AlternateSourceConflictError, LibdockError

logger = logging.getLogger(__name__)

PROPERTIES_FILENAME = "library.properties"
_TMP_DIRNAME = ".libdock-tmp"
_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]")


class InstallLocation(enum.Enum):
    USER = "user"
    BUILTIN = "builtin"
    ANY_WRITABLE = "any"

    @classmethod
    def parse(cls, value: "str | InstallLocation | None") -> "InstallLocation":
        if isinstance(value, InstallLocation):
            return value
        raw = (value or "").strip().lower()
        if not raw:
            return cls.ANY_WRITABLE
        for loc in cls:
            if loc.value == raw or loc.name.lower() == raw:
                return loc
        raise LibdockError(f"Unknown install location {value!r}. Expected one of: user, builtin, any.")

    @property
    def writable(self) -> "InstallLocation":
        return InstallLocation.USER if self is InstallLocation.ANY_WRITABLE else self


@dataclass(frozen=True)
class InstalledLibrary:
    name: str
    version: str
    location: InstallLocation
    path: Path

    def __str__(self) -> str:
        return f"{self.name}@{self.version}" if self.version else self.name


class Store(Protocol):
    def installed_at(self, name: str, location: InstallLocation) -> InstalledLibrary | None:
        ...

    def target_path(self, name: str, location: InstallLocation) -> Path:
        ...

    def install(self, release: LibraryRelease, target_path: Path) -> None:
        ...

    def uninstall(self, installed: InstalledLibrary) -> None:
        ...

    def install_zip(
        self, path: Path, *, overwrite: bool, location: InstallLocation | None = None
    ) -> InstalledLibrary:
        ...

    def install_from_git(
        self, url: str, *, overwrite: bool, location: InstallLocation | None = None
    ) -> InstalledLibrary:
        ...

    def rescan(self) -> None:
        ...


def sanitize_name(name: str) -> str:
    return _UNSAFE_NAME_RE.sub("_", name.strip())


def read_properties(path: Path) -> dict[str, str]:
    props: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        props[key.strip()] = value.strip()
    return props


def is_library_dir(path: Path) -> bool:
    return (path / PROPERTIES_FILENAME).is_file()


def safe_extract_zip(archive: Path, dest: Path) -> None:
    """Extract ``archive`` into ``dest``; nothing is written if any entry would land outside it."""
    try:
        zf = zipfile.ZipFile(archive, "r")
    except (OSError, zipfile.BadZipFile) as e:
        raise LibdockError(f"Could not open archive {archive}: {e}") from e
    with zf:
        members = [info for info in zf.infolist() if info.filename]
        dest.mkdir(parents=True, exist_ok=True)
        base = dest.resolve()
        for info in members:
            if info.filename.startswith(("/", "\\")) or not (base / info.filename).resolve().is_relative_to(base):
                raise LibdockError(f"Archive contains an invalid path entry: {info.filename!r}")
        try:
            for info in members:
                zf.extract(info, dest)
        except zipfile.BadZipFile as e:
            raise LibdockError(f"Corrupt archive {archive}: {e}") from e


def _find_library_root(unpacked: Path, *, what: str) -> Path:
    if is_library_dir(unpacked):
        return unpacked
    children = [p for p in unpacked.iterdir() if not p.name.startswith("__MACOSX")]
    if len(children) == 1 and children[0].is_dir() and is_library_dir(children[0]):
        return children[0]
    raise LibdockError(f"{what} does not contain a library ({PROPERTIES_FILENAME} not found).")


def _split_git_url(url: str) -> tuple[str, str | None]:
    parts = urlsplit(url.strip())
    ref = parts.fragment or None
    return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, "")), ref


def _name_from_git_url(url: str) -> str:
    path = urlsplit(url).path.rstrip("/")
    name = path.rsplit("/", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name


class FilesystemStore:
    """
    Installed libraries, one directory per library under each location root.

    Reads are served from a scan cache; mutations invalidate it and
    ``rescan()`` rebuilds it eagerly.
    """

    def __init__(
        self,
        roots: dict[InstallLocation, Path],
        *,
        downloads_dir: Path,
        default_location: InstallLocation = InstallLocation.USER,
        git_executable: str = "git",
    ) -> None:
        self.roots = {loc.writable: Path(p).expanduser() for loc, p in roots.items()}
        self.downloads_dir = Path(downloads_dir).expanduser()
        self.default_location = default_location.writable
        self.git_executable = git_executable
        self._installed: dict[InstallLocation, dict[str, InstalledLibrary]] | None = None

    def root(self, location: InstallLocation) -> Path:
        loc = location.writable
        try:
            return self.roots[loc]
        except KeyError:
            raise LibdockError(f"No directory configured for install location {loc.value!r}") from None

    def target_path(self, name: str, location: InstallLocation) -> Path:
        return self.root(location) / sanitize_name(name)

    def _scan_location(self, location: InstallLocation, root: Path) -> dict[str, InstalledLibrary]:
        found: dict[str, InstalledLibrary] = {}
        if not root.is_dir():
            return found
        for child in sorted(root.iterdir()):
            if not child.is_dir() or child.name == _TMP_DIRNAME or not is_library_dir(child):
                continue
            props = read_properties(child / PROPERTIES_FILENAME)
            name = props.get("name") or child.name
            found[name] = InstalledLibrary(name=name, version=props.get("version", ""), location=location, path=child)
        return found

    def rescan(self) -> None:
        scanned: dict[InstallLocation, dict[str, InstalledLibrary]] = {}
        for loc, root in self.roots.items():
            try:
                scanned[loc] = self._scan_location(loc, root)
            except OSError as e:
                raise LibdockError(f"Could not read libraries in {root}: {e}") from e
        self._installed = scanned
        logger.debug("Scanned %d installed libraries", sum(len(v) for v in scanned.values()))

    def _index(self) -> dict[InstallLocation, dict[str, InstalledLibrary]]:
        if self._installed is None:
            self.rescan()
        assert self._installed is not None
        return self._installed

    def installed_libraries(self, location: InstallLocation | None = None) -> list[InstalledLibrary]:
        index = self._index()
        locations = [location.writable] if location is not None else list(index)
        out: list[InstalledLibrary] = []
        for loc in locations:
            out.extend(index.get(loc, {}).values())
        return sorted(out, key=lambda lib: (lib.location.value, lib.name.lower()))

    def installed_at(self, name: str, location: InstallLocation) -> InstalledLibrary | None:
        return self._index().get(location.writable, {}).get(name)

    def _staging_dir(self, root: Path) -> Path:
        tmp_root = root / _TMP_DIRNAME
        tmp_root.mkdir(parents=True, exist_ok=True)
        return tmp_root

    def _move_into_place(self, source: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(target))
        self._installed = None

    def install(self, release: LibraryRelease, target_path: Path) -> None:
        archive = self.downloads_dir / release.archive_name
        if not archive.is_file():
            raise LibdockError(f"Archive for {release} not found in {self.downloads_dir}; download it first.")
        if target_path.exists():
            raise LibdockError(f"Destination {target_path} already exists")

        with tempfile.TemporaryDirectory(prefix="libdock-", dir=self._staging_dir(target_path.parent)) as td:
            unpacked = Path(td) / "unpacked"
            safe_extract_zip(archive, unpacked)
            source = _find_library_root(unpacked, what=f"Archive for {release}")
            self._move_into_place(source, target_path)
        logger.info("Installed %s into %s", release, target_path)

    def uninstall(self, installed: InstalledLibrary) -> None:
        if not installed.path.exists():
            raise LibdockError(f"Library {installed} is not present at {installed.path}")
        try:
            shutil.rmtree(installed.path)
        except OSError as e:
            raise LibdockError(f"Could not remove {installed.path}: {e}") from e
        self._installed = None
        logger.info("Removed %s from %s", installed, installed.path)

    def _install_tree(
        self, source: Path, *, fallback_name: str, overwrite: bool, location: InstallLocation
    ) -> InstalledLibrary:
        props = read_properties(source / PROPERTIES_FILENAME)
        name = props.get("name") or fallback_name
        target = self.target_path(name, location)
        if target.exists():
            if not overwrite:
                raise AlternateSourceConflictError(name, target)
            logger.info("Replacing existing library %s at %s", name, target)
            shutil.rmtree(target)
        self._move_into_place(source, target)
        return InstalledLibrary(name=name, version=props.get("version", ""), location=location, path=target)

    def install_zip(
        self, path: Path, *, overwrite: bool, location: InstallLocation | None = None
    ) -> InstalledLibrary:
        archive = Path(path).expanduser()
        if not archive.is_file():
            raise LibdockError(f"Archive not found: {archive}")
        loc = (location or self.default_location).writable
        with tempfile.TemporaryDirectory(prefix="libdock-zip-", dir=self._staging_dir(self.root(loc))) as td:
            unpacked = Path(td) / "unpacked"
            safe_extract_zip(archive, unpacked)
            source = _find_library_root(unpacked, what=f"Archive {archive}")
            fallback = source.name if source != unpacked else archive.stem
            lib = self._install_tree(source, fallback_name=fallback, overwrite=overwrite, location=loc)
        logger.info("Installed %s from %s", lib, archive)
        return lib

    def install_from_git(
        self, url: str, *, overwrite: bool, location: InstallLocation | None = None
    ) -> InstalledLibrary:
        clone_url, ref = _split_git_url(url)
        loc = (location or self.default_location).writable
        with tempfile.TemporaryDirectory(prefix="libdock-git-", dir=self._staging_dir(self.root(loc))) as td:
            checkout = Path(td) / _name_from_git_url(clone_url)
            cmd = [self.git_executable, "clone", "--depth", "1"]
            if ref:
                cmd += ["--branch", ref]
            cmd += [clone_url, str(checkout)]
            logger.debug("Running %s", " ".join(cmd))
            try:
                subprocess.run(cmd, check=True, capture_output=True, text=True)
            except FileNotFoundError as e:
                raise LibdockError(f"git executable not found: {self.git_executable}") from e
            except subprocess.CalledProcessError as e:
                detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
                raise LibdockError(f"git clone of {clone_url} failed: {detail}") from e
            git_dir = checkout / ".git"
            if git_dir.exists():
                shutil.rmtree(git_dir)
            source = _find_library_root(checkout, what=f"Repository {clone_url}")
            lib = self._install_tree(source, fallback_name=checkout.name, overwrite=overwrite, location=loc)
        logger.info("Installed %s from %s", lib, clone_url)
        return lib
