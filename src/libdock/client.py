from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Protocol

import httpx

from .catalog import LibraryRelease
from .config import DEFAULT_TIMEOUT_S
from .errors import DownloadError, LibdockError
from .progress import DownloadProgress

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_HASH_ALGORITHMS = {"SHA-256": "sha256", "SHA-1": "sha1", "MD5": "md5"}


class LibdockHTTPError(LibdockError):
    def __init__(self, status_code: int, url: str) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(f"HTTP {status_code} for {url}")


class Downloader(Protocol):
    def download(self, release: LibraryRelease, progress: DownloadProgress) -> Path:
        ...


class LibdockClient:
    """
    Thin httpx wrapper used for archive downloads.
    """

    def __init__(self, *, timeout_s: float = DEFAULT_TIMEOUT_S, headers: dict[str, str] | None = None) -> None:
        self.timeout_s = timeout_s
        self._http = httpx.Client(timeout=timeout_s, follow_redirects=True, headers=dict(headers or {}))

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "LibdockClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def stream_download(self, url: str, dest: Path, *, label: str, progress: DownloadProgress) -> int:
        """
        Stream ``url`` into ``dest`` and return the number of bytes written.

        The body goes to a sibling ``.part`` file first and is moved into place
        only once complete.
        """
        tmp = dest.with_name(dest.name + ".part")
        progress.start(url, label)
        downloaded = 0
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with self._http.stream("GET", url) as resp:
                if resp.status_code >= 400:
                    raise LibdockHTTPError(resp.status_code, url)
                try:
                    total = int(resp.headers.get("content-length", "0"))
                except ValueError:
                    total = 0
                with tmp.open("wb") as out:
                    for chunk in resp.iter_bytes(_CHUNK_SIZE):
                        out.write(chunk)
                        downloaded += len(chunk)
                        progress.update(downloaded, total)
            tmp.replace(dest)
        except httpx.HTTPError as e:
            tmp.unlink(missing_ok=True)
            progress.end(False, str(e))
            raise LibdockError(f"Request failed: {e}") from e
        except LibdockError as e:
            tmp.unlink(missing_ok=True)
            progress.end(False, str(e))
            raise
        except OSError as e:
            if tmp.parent.is_dir():
                tmp.unlink(missing_ok=True)
            progress.end(False, str(e))
            raise DownloadError(f"Could not write {dest}: {e}") from e
        progress.end(True, f"{label} downloaded")
        return downloaded


def verify_checksum(path: Path, checksum: str) -> bool:
    if not checksum:
        return True
    algo_name, sep, expected = checksum.partition(":")
    if not sep:
        raise DownloadError(f"Invalid checksum format: {checksum!r}")
    algo = _HASH_ALGORITHMS.get(algo_name.strip().upper())
    if algo is None:
        raise DownloadError(f"Unsupported hash algorithm: {algo_name}")
    h = hashlib.new(algo)
    with path.open("rb") as f:
        for block in iter(lambda: f.read(_CHUNK_SIZE), b""):
            h.update(block)
    return h.hexdigest().lower() == expected.strip().lower()


class HttpDownloader:
    def __init__(self, client: LibdockClient, downloads_dir: Path) -> None:
        self._client = client
        self.downloads_dir = Path(downloads_dir).expanduser()

    def archive_path(self, release: LibraryRelease) -> Path:
        return self.downloads_dir / release.archive_name

    def _is_valid(self, release: LibraryRelease, path: Path) -> bool:
        if not path.is_file():
            return False
        if release.size and path.stat().st_size != release.size:
            return False
        return verify_checksum(path, release.checksum)

    def download(self, release: LibraryRelease, progress: DownloadProgress) -> Path:
        if not release.url:
            raise DownloadError(f"Release {release} has no download URL.")
        dest = self.archive_path(release)
        label = str(release)
        if self._is_valid(release, dest):
            logger.debug("Archive for %s already in %s", release, dest)
            progress.end(True, f"{label} already downloaded")
            return dest

        try:
            self._client.stream_download(release.url, dest, label=label, progress=progress)
        except LibdockError as e:
            raise DownloadError(f"Could not download {label}: {e}") from e

        if not self._is_valid(release, dest):
            dest.unlink(missing_ok=True)
            raise DownloadError(f"Archive for {label} failed size or checksum verification")
        return dest
