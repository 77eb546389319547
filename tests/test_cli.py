import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

from libdock.catalog import LibraryRelease
from libdock.cli import _split_library_and_version, build_parser, cmd_install, main
from libdock.config import Config
from libdock.errors import LibdockError, LibraryAlreadyInstalledError
from libdock.executor import STATUS_INSTALLED, BatchOutcome, LibraryResult
from libdock.installer import GitLibraryInstallRequest, LibraryInstallRequest, ZipLibraryInstallRequest
from libdock.store import InstallLocation


def _cfg(base: Path) -> Config:
    return Config(
        index_path=str(base / "library_index.json"),
        user_dir=str(base / "user"),
        builtin_dir=str(base / "builtin"),
        downloads_dir=str(base / "downloads"),
    )


class TestInstallCommand(unittest.TestCase):
    def test_split_library_and_version(self) -> None:
        self.assertEqual(_split_library_and_version("Foo@1.2.3", None), ("Foo", "1.2.3"))
        self.assertEqual(_split_library_and_version("Adafruit GFX Library", "1.11.9"), ("Adafruit GFX Library", "1.11.9"))
        self.assertEqual(_split_library_and_version("Foo", None), ("Foo", ""))
        with self.assertRaises(LibdockError):
            _split_library_and_version("Foo@1.0", "2.0")

    def test_install_builds_request_from_arguments(self) -> None:
        args = build_parser().parse_args(
            ["install", "Foo@2.0", "--location", "builtin", "--no-deps", "--no-overwrite", "--json"]
        )
        outcome = BatchOutcome([LibraryResult(LibraryRelease(name="Foo", version="2.0"), "install-builtin", STATUS_INSTALLED)])
        fake_session = Mock()

        with (
            patch("libdock.cli.load_config", return_value=Config()),
            patch("libdock.cli.Session") as mock_session_cls,
            patch("libdock.cli.library_install", return_value=outcome) as mock_install,
            patch("sys.stdout", new=io.StringIO()) as stdout,
        ):
            mock_session_cls.from_config.return_value = fake_session
            rc = cmd_install(args)

        self.assertEqual(rc, 0)
        req = mock_install.call_args.args[1]
        self.assertEqual(
            req,
            LibraryInstallRequest(
                name="Foo",
                version="2.0",
                location=InstallLocation.BUILTIN,
                no_deps=True,
                no_overwrite=True,
            ),
        )
        mock_session_cls.from_config.assert_called_once()
        self.assertTrue(mock_session_cls.from_config.call_args.kwargs["load_catalog"])
        fake_session.close.assert_called_once()
        payload = json.loads(stdout.getvalue())
        self.assertEqual(payload, {"installed": [{"name": "Foo", "reason": "install-builtin", "version": "2.0"}]})

    def test_zip_install_skips_catalog(self) -> None:
        args = build_parser().parse_args(
            ["install", "--zip-path", "/tmp/MyLib.zip", "--overwrite", "--location", "builtin"]
        )

        with (
            patch("libdock.cli.load_config", return_value=Config()),
            patch("libdock.cli.Session") as mock_session_cls,
            patch("libdock.cli.zip_library_install") as mock_zip,
            patch("libdock.cli.library_install") as mock_install,
        ):
            rc = cmd_install(args)

        self.assertEqual(rc, 0)
        self.assertFalse(mock_session_cls.from_config.call_args.kwargs["load_catalog"])
        self.assertIs(mock_session_cls.from_config.call_args.kwargs["default_location"], InstallLocation.BUILTIN)
        self.assertEqual(mock_zip.call_args.args[1], ZipLibraryInstallRequest(path=Path("/tmp/MyLib.zip"), overwrite=True))
        mock_install.assert_not_called()

    def test_git_install(self) -> None:
        args = build_parser().parse_args(["install", "--git-url", "https://github.com/acme/Lib.git#v1"])

        with (
            patch("libdock.cli.load_config", return_value=Config()),
            patch("libdock.cli.Session"),
            patch("libdock.cli.git_library_install") as mock_git,
        ):
            rc = cmd_install(args)

        self.assertEqual(rc, 0)
        self.assertEqual(
            mock_git.call_args.args[1],
            GitLibraryInstallRequest(url="https://github.com/acme/Lib.git#v1", overwrite=False),
        )

    def test_install_rejects_mixed_sources(self) -> None:
        args = build_parser().parse_args(["install", "Foo", "--zip-path", "/tmp/x.zip"])
        with self.assertRaises(LibdockError):
            cmd_install(args)

    def test_runtime_overrides_reach_config(self) -> None:
        args = build_parser().parse_args(["install", "Foo", "--user-dir", "/opt/libs", "--timeout-s", "3"])

        with (
            patch("libdock.cli.load_config", return_value=Config()),
            patch("libdock.cli.Session") as mock_session_cls,
            patch("libdock.cli.library_install", return_value=BatchOutcome()),
            patch("sys.stdout", new=io.StringIO()) as stdout,
        ):
            cmd_install(args)

        cfg = mock_session_cls.from_config.call_args.args[0]
        self.assertEqual(cfg.user_dir, "/opt/libs")
        self.assertEqual(cfg.timeout_s, 3.0)
        self.assertIn("Nothing to install.", stdout.getvalue())

    def test_main_reports_errors(self) -> None:
        with (
            patch("libdock.cli.cmd_install", side_effect=LibraryAlreadyInstalledError("Foo", "1.0", "2.0")),
            patch("sys.stderr", new=io.StringIO()) as stderr,
        ):
            rc = main(["install", "Foo@2.0", "--no-overwrite"])

        self.assertEqual(rc, 1)
        self.assertIn("error: Library Foo@2.0 is already installed", stderr.getvalue())


class TestListCommand(unittest.TestCase):
    def test_list_json(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            base = Path(td)
            lib_dir = base / "user" / "Servo"
            lib_dir.mkdir(parents=True)
            (lib_dir / "library.properties").write_text("name=Servo\nversion=1.2.1\n", encoding="utf-8")

            with (
                patch("libdock.cli.load_config", return_value=_cfg(base)),
                patch("sys.stdout", new=io.StringIO()) as stdout,
            ):
                rc = main(["list", "--json"])

        self.assertEqual(rc, 0)
        items = json.loads(stdout.getvalue())
        self.assertEqual([(i["name"], i["version"], i["location"]) for i in items], [("Servo", "1.2.1", "user")])


class TestConfigCommand(unittest.TestCase):
    def test_config_set_and_show(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "config.json"
            with (
                patch.dict("os.environ", {"LIBDOCK_CONFIG_PATH": str(path)}, clear=False),
                patch("sys.stdout", new=io.StringIO()) as stdout,
            ):
                rc_set = main(["config", "set", "--index", "/srv/index.json", "--timeout-s", "12"])
                rc_show = main(["config", "show"])

            saved = json.loads(path.read_text(encoding="utf-8"))

        self.assertEqual((rc_set, rc_show), (0, 0))
        self.assertEqual(saved["index_path"], "/srv/index.json")
        self.assertEqual(saved["timeout_s"], 12.0)
        self.assertIn('"index_path": "/srv/index.json"', stdout.getvalue())


if __name__ == "__main__":
    unittest.main()
