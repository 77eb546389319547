import tempfile
import unittest
from pathlib import Path

from libdock.catalog import IndexCatalog, LibraryIdentity, LibraryRelease
from libdock.errors import InstallPrerequisiteError, LibraryAlreadyInstalledError, LibraryNotFoundError
from libdock.planner import plan_install
from libdock.progress import TaskProgress
from libdock.resolver import resolve_dependencies
from libdock.store import FilesystemStore, InstallLocation


class TaskRecorder:
    def __init__(self) -> None:
        self.events: list[TaskProgress] = []

    def on_task(self, event: TaskProgress) -> None:
        self.events.append(event)


def _preinstall(root: Path, name: str, version: str) -> Path:
    lib_dir = root / name
    lib_dir.mkdir(parents=True)
    (lib_dir / "library.properties").write_text(f"name={name}\nversion={version}\n", encoding="utf-8")
    return lib_dir


def _catalog() -> IndexCatalog:
    return IndexCatalog(
        [
            LibraryRelease(name="Foo", version="2.0", dependencies=(LibraryIdentity("Bar", "1.0"),)),
            LibraryRelease(name="Foo", version="1.0"),
            LibraryRelease(name="Bar", version="1.0"),
        ]
    )


class TestPlanInstall(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.addCleanup(self._td.cleanup)
        base = Path(self._td.name)
        self.user_dir = base / "user"
        self.builtin_dir = base / "builtin"
        self.store = FilesystemStore(
            {InstallLocation.USER: self.user_dir, InstallLocation.BUILTIN: self.builtin_dir},
            downloads_dir=base / "downloads",
        )
        self.catalog = _catalog()
        self.tasks = TaskRecorder()

    def _plan(self, name: str, version: str, *, location=InstallLocation.USER, no_deps=False, no_overwrite=False):
        closure = resolve_dependencies(self.catalog, LibraryIdentity(name, version), no_deps=no_deps)
        return plan_install(
            closure,
            location,
            catalog=self.catalog,
            store=self.store,
            no_overwrite=no_overwrite,
            task_progress=self.tasks,
        )

    def test_fresh_install_plans_every_library(self) -> None:
        plans = self._plan("Foo", "2.0")

        self.assertEqual([str(p.release) for p in plans], ["Bar@1.0", "Foo@2.0"])
        self.assertTrue(all(p.replaced is None and not p.up_to_date for p in plans))
        self.assertEqual(plans[1].target_path, self.user_dir / "Foo")
        self.assertEqual(self.tasks.events, [])

    def test_up_to_date_is_reported_immediately(self) -> None:
        _preinstall(self.user_dir, "Bar", "1.0")

        plans = self._plan("Foo", "2.0")

        bar = plans[0]
        self.assertTrue(bar.up_to_date)
        self.assertEqual(self.tasks.events, [TaskProgress(message="Already installed Bar@1.0", completed=True)])

    def test_installed_in_other_location_does_not_count(self) -> None:
        _preinstall(self.builtin_dir, "Bar", "1.0")

        plans = self._plan("Bar", "1.0")

        self.assertFalse(plans[0].up_to_date)
        self.assertIsNone(plans[0].replaced)

    def test_different_version_is_replaced(self) -> None:
        _preinstall(self.user_dir, "Foo", "1.0")

        plans = self._plan("Foo", "2.0", no_deps=True)

        self.assertEqual(len(plans), 1)
        assert plans[0].replaced is not None
        self.assertEqual(plans[0].replaced.version, "1.0")
        self.assertFalse(plans[0].up_to_date)

    def test_no_overwrite_refuses_different_version(self) -> None:
        _preinstall(self.user_dir, "Foo", "1.0")

        with self.assertRaises(LibraryAlreadyInstalledError) as ctx:
            self._plan("Foo", "2.0", no_overwrite=True)

        self.assertEqual(ctx.exception.name, "Foo")
        self.assertEqual(ctx.exception.installed_version, "1.0")
        self.assertEqual(ctx.exception.requested_version, "2.0")

    def test_no_deps_mode_looks_up_release(self) -> None:
        with self.assertRaises(LibraryNotFoundError):
            self._plan("Foo", "9.9", no_deps=True)

    def test_foreign_directory_in_the_way(self) -> None:
        (self.user_dir / "Bar").mkdir(parents=True)
        (self.user_dir / "Bar" / "notes.txt").write_text("not a library", encoding="utf-8")

        with self.assertRaises(InstallPrerequisiteError) as ctx:
            self._plan("Foo", "2.0")

        self.assertEqual(ctx.exception.path, self.user_dir / "Bar")


if __name__ == "__main__":
    unittest.main()
