from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
import textwrap
from pathlib import Path

from ._version import __version__
from .config import Config, apply_env_overrides, config_path, load_config, save_config
from .errors import LibdockError
from .installer import (
    GitLibraryInstallRequest,
    LibraryInstallRequest,
    ZipLibraryInstallRequest,
    git_library_install,
    library_install,
    zip_library_install,
)
from .progress import ConsoleProgress
from .session import Session
from .store import InstallLocation

_LOCATION_CHOICES = ("user", "builtin", "any")


def _print_table(rows: list[list[str]]) -> None:
    if not rows:
        return
    widths = [0] * len(rows[0])
    for r in rows:
        for i, c in enumerate(r):
            widths[i] = max(widths[i], len(c))
    for r in rows:
        line = "  ".join(c.ljust(widths[i]) for i, c in enumerate(r))
        print(line.rstrip())


def _merge_cfg(base: Config, args: argparse.Namespace) -> Config:
    # Env overrides config; CLI overrides both.
    cfg = apply_env_overrides(base)
    changes = {}
    for name in ("index_path", "user_dir", "builtin_dir", "downloads_dir", "timeout_s"):
        value = getattr(args, name, None)
        if value is not None:
            changes[name] = value
    return dataclasses.replace(cfg, **changes) if changes else cfg


def _make_session(
    args: argparse.Namespace,
    *,
    load_catalog: bool = True,
    default_location: InstallLocation = InstallLocation.USER,
) -> Session:
    cfg = _merge_cfg(load_config(), args)
    return Session.from_config(cfg, load_catalog=load_catalog, default_location=default_location)


def _split_library_and_version(library: str, version: str | None) -> tuple[str, str]:
    value = library.strip()
    if not value:
        raise LibdockError("Library name must not be empty.")

    at_idx = value.rfind("@")
    if at_idx > 0:
        name = value[:at_idx].strip()
        shorthand = value[at_idx + 1 :].strip()
        if name and shorthand:
            if version:
                raise LibdockError("Specify version either as @<version> or --version, not both.")
            return name, shorthand

    return value, (version or "").strip()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="libdock",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Dependency-aware library installer.",
        epilog=textwrap.dedent(
            """\
            Environment variables:
              LIBDOCK_CONFIG_PATH, LIBDOCK_INDEX_PATH, LIBDOCK_USER_DIR, LIBDOCK_BUILTIN_DIR,
              LIBDOCK_DOWNLOADS_DIR, LIBDOCK_TIMEOUT_S
            """
        ),
    )

    def _add_runtime_overrides(parser: argparse.ArgumentParser) -> None:
        # Accepted both before and after the subcommand.
        parser.add_argument("--index", dest="index_path", default=argparse.SUPPRESS, help="Library index JSON file")
        parser.add_argument("--user-dir", default=argparse.SUPPRESS, help="User libraries directory")
        parser.add_argument("--builtin-dir", default=argparse.SUPPRESS, help="Built-in libraries directory")
        parser.add_argument("--downloads-dir", default=argparse.SUPPRESS, help="Archive download cache")
        parser.add_argument("--timeout-s", type=float, default=argparse.SUPPRESS, help="HTTP timeout in seconds")
        parser.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS, help="Debug logging")

    _add_runtime_overrides(p)
    p.add_argument("--version", action="version", version=f"libdock {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # config
    cfg = sub.add_parser("config", help="Manage local config")
    cfg_sub = cfg.add_subparsers(dest="subcmd", required=True)
    cfg_sub.add_parser("path", help="Print config path")
    cfg_sub.add_parser("show", help="Show effective config")
    cfg_set = cfg_sub.add_parser("set", help="Set config fields")
    cfg_set.add_argument("--index", dest="index_path")
    cfg_set.add_argument("--user-dir")
    cfg_set.add_argument("--builtin-dir")
    cfg_set.add_argument("--downloads-dir")
    cfg_set.add_argument("--timeout-s", type=float)

    # install
    install = sub.add_parser(
        "install",
        aliases=["i"],
        help="Install a library with its dependencies, or from a zip archive / git URL",
    )
    _add_runtime_overrides(install)
    install.add_argument("library", nargs="?", help='Library name, optionally "Name@version"')
    install.add_argument("--version", dest="lib_version", help="Exact version (default: latest)")
    install.add_argument("--location", choices=_LOCATION_CHOICES, default="any", help="Install location (default: any)")
    install.add_argument("--no-deps", action="store_true", help="Do not install dependencies")
    install.add_argument(
        "--no-overwrite",
        action="store_true",
        help="Fail instead of replacing a library already installed with another version",
    )
    install.add_argument("--zip-path", help="Install from a local zip archive (no dependency resolution)")
    install.add_argument("--git-url", help="Install from a git URL, optionally url#ref (no dependency resolution)")
    install.add_argument("--overwrite", action="store_true", help="Replace an existing library (zip/git only)")
    install.add_argument("--json", action="store_true", help="Output JSON")

    # list
    lst = sub.add_parser("list", aliases=["ls"], help="List installed libraries")
    _add_runtime_overrides(lst)
    lst.add_argument("--location", choices=_LOCATION_CHOICES, help="Only this location")
    lst.add_argument("--json", action="store_true", help="Output JSON")

    return p


def cmd_config(args: argparse.Namespace) -> int:
    if args.subcmd == "path":
        print(str(config_path()))
        return 0

    if args.subcmd == "show":
        cfg = _merge_cfg(load_config(), args)
        print(json.dumps(dataclasses.asdict(cfg), indent=2, sort_keys=True))
        return 0

    if args.subcmd == "set":
        cfg = load_config()
        changes = {}
        for name in ("index_path", "user_dir", "builtin_dir", "downloads_dir", "timeout_s"):
            value = getattr(args, name, None)
            if value is not None:
                changes[name] = value
        path = save_config(dataclasses.replace(cfg, **changes))
        print(f"Saved config to {path}")
        return 0

    raise AssertionError("unreachable")


def _install_from_source(args: argparse.Namespace, progress: ConsoleProgress) -> int:
    if args.library:
        raise LibdockError("Pass either a library name or --zip-path/--git-url, not both.")
    if args.zip_path and args.git_url:
        raise LibdockError("Pass only one of --zip-path/--git-url.")

    location = InstallLocation.parse(args.location)
    session = _make_session(args, load_catalog=False, default_location=location)
    try:
        if args.zip_path:
            source = str(Path(args.zip_path).expanduser())
            zip_library_install(
                session, ZipLibraryInstallRequest(path=Path(source), overwrite=args.overwrite), progress
            )
        else:
            source = args.git_url
            git_library_install(session, GitLibraryInstallRequest(url=source, overwrite=args.overwrite), progress)
    finally:
        session.close()

    if args.json:
        print(json.dumps({"source": source, "installed": True}, indent=2, sort_keys=True))
    return 0


def cmd_install(args: argparse.Namespace) -> int:
    progress = ConsoleProgress()
    if args.zip_path or args.git_url:
        return _install_from_source(args, progress)
    if args.overwrite:
        raise LibdockError("--overwrite only applies to --zip-path/--git-url installs; see --no-overwrite.")
    if not args.library:
        raise LibdockError("Missing library name.")

    name, version = _split_library_and_version(args.library, args.lib_version)
    req = LibraryInstallRequest(
        name=name,
        version=version,
        location=InstallLocation.parse(args.location),
        no_deps=args.no_deps,
        no_overwrite=args.no_overwrite,
    )
    session = _make_session(args)
    try:
        outcome = library_install(session, req, progress, progress)
    finally:
        session.close()

    payload = {
        "installed": [
            {"name": r.release.name, "version": r.release.version, "reason": r.reason} for r in outcome.installed
        ],
    }
    if args.json:
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    if not outcome.installed:
        print("Nothing to install.")
        return 0
    rows = [["NAME", "VERSION", "REASON"]]
    rows.extend([r.release.name, r.release.version, r.reason] for r in outcome.installed)
    _print_table(rows)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    session = _make_session(args, load_catalog=False)
    try:
        location = InstallLocation.parse(args.location) if args.location else None
        libs = session.store.installed_libraries(location)  # type: ignore[attr-defined]
    finally:
        session.close()

    if args.json:
        items = [
            {"name": lib.name, "version": lib.version, "location": lib.location.value, "path": str(lib.path)}
            for lib in libs
        ]
        print(json.dumps(items, indent=2, sort_keys=True))
        return 0

    if not libs:
        print("No libraries installed.")
        return 0
    rows = [["NAME", "VERSION", "LOCATION"]]
    rows.extend([lib.name, lib.version or "-", lib.location.value] for lib in libs)
    _print_table(rows)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(getattr(args, "verbose", False))
    try:
        if args.cmd == "config":
            return cmd_config(args)
        if args.cmd in ("install", "i"):
            return cmd_install(args)
        if args.cmd in ("list", "ls"):
            return cmd_list(args)
        raise AssertionError("unreachable")
    except LibdockError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
