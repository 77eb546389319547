from __future__ import annotations

import logging
import threading
from pathlib import Path

from .catalog import Catalog, IndexCatalog
from .client import Downloader, HttpDownloader, LibdockClient
from .config import Config
from .errors import SessionRefreshError
from .store import FilesystemStore, InstallLocation, Store

logger = logging.getLogger(__name__)


class Session:
    """
    Handle shared by all operations against one catalog and store.

    ``lock`` serializes install-mutating operations; concurrent installs
    issued against the same session run one after the other.
    """

    def __init__(
        self,
        *,
        catalog: Catalog,
        store: Store,
        downloader: Downloader,
        default_location: InstallLocation = InstallLocation.USER,
        client: LibdockClient | None = None,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.downloader = downloader
        self.default_location = default_location.writable
        self.lock = threading.Lock()
        self._client = client

    @classmethod
    def from_config(
        cls,
        cfg: Config,
        *,
        load_catalog: bool = True,
        default_location: InstallLocation = InstallLocation.USER,
    ) -> "Session":
        downloads_dir = Path(cfg.downloads_dir).expanduser()
        store = FilesystemStore(
            {
                InstallLocation.USER: Path(cfg.user_dir),
                InstallLocation.BUILTIN: Path(cfg.builtin_dir),
            },
            downloads_dir=downloads_dir,
            default_location=default_location,
        )
        catalog = IndexCatalog.from_file(Path(cfg.index_path)) if load_catalog else IndexCatalog()
        client = LibdockClient(timeout_s=cfg.timeout_s)
        return cls(
            catalog=catalog,
            store=store,
            downloader=HttpDownloader(client, downloads_dir),
            default_location=default_location,
            client=client,
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def reinitialize(self) -> None:
        """Reload the view of installed libraries from disk."""
        try:
            self.store.rescan()
        except Exception as e:  # noqa: BLE001 - any rescan failure is a refresh failure
            raise SessionRefreshError(e) from e
        logger.debug("Session refreshed")
