from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any

from platformdirs import user_cache_path, user_config_path, user_data_path

APP_NAME = "libdock"
DEFAULT_TIMEOUT_S = 30.0
INDEX_FILENAME = "library_index.json"

_ENV_OVERRIDES = {
    "index_path": "LIBDOCK_INDEX_PATH",
    "user_dir": "LIBDOCK_USER_DIR",
    "builtin_dir": "LIBDOCK_BUILTIN_DIR",
    "downloads_dir": "LIBDOCK_DOWNLOADS_DIR",
    "timeout_s": "LIBDOCK_TIMEOUT_S",
}


def _default_index_path() -> str:
    return str(user_data_path(APP_NAME) / INDEX_FILENAME)


def _default_user_dir() -> str:
    return str(user_data_path(APP_NAME) / "libraries")


def _default_builtin_dir() -> str:
    return str(user_data_path(APP_NAME) / "builtin")


def _default_downloads_dir() -> str:
    return str(user_cache_path(APP_NAME) / "downloads")


@dataclass(frozen=True)
class Config:
    index_path: str = field(default_factory=_default_index_path)
    user_dir: str = field(default_factory=_default_user_dir)
    builtin_dir: str = field(default_factory=_default_builtin_dir)
    downloads_dir: str = field(default_factory=_default_downloads_dir)
    timeout_s: float = DEFAULT_TIMEOUT_S


def config_path(path_override: str | Path | None = None) -> Path:
    if path_override is not None:
        return Path(path_override).expanduser()
    if env := os.getenv("LIBDOCK_CONFIG_PATH"):
        return Path(env).expanduser()
    return user_config_path(APP_NAME) / "config.json"


def load_config(path_override: str | Path | None = None) -> Config:
    path = config_path(path_override)
    if not path.exists():
        return Config()

    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        return Config()

    allowed = {f.name for f in Config.__dataclass_fields__.values()}  # type: ignore[attr-defined]
    filtered: dict[str, Any] = {k: v for k, v in raw.items() if k in allowed and v is not None}
    return Config(**filtered)  # type: ignore[arg-type]


def save_config(cfg: Config, path_override: str | Path | None = None) -> Path:
    path = config_path(path_override)
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True) + "\n", encoding="utf-8")
    tmp.replace(path)
    return path


def apply_env_overrides(cfg: Config, environ: dict[str, str] | None = None) -> Config:
    env = os.environ if environ is None else environ
    changes: dict[str, Any] = {}
    for name, var in _ENV_OVERRIDES.items():
        value = env.get(var)
        if not value:
            continue
        if name == "timeout_s":
            try:
                changes[name] = float(value)
            except ValueError:
                continue
        else:
            changes[name] = value
    return replace(cfg, **changes) if changes else cfg
