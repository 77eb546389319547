import unittest

from libdock.catalog import IndexCatalog, LibraryIdentity, LibraryRelease
from libdock.errors import DependencyResolutionError, LibraryNotFoundError
from libdock.resolver import resolve_dependencies


def _rel(name: str, version: str, *deps: str) -> LibraryRelease:
    identities = []
    for dep in deps:
        dep_name, _, dep_version = dep.partition("@")
        identities.append(LibraryIdentity(dep_name, dep_version))
    return LibraryRelease(name=name, version=version, url=f"https://example.invalid/{name}-{version}.zip", dependencies=tuple(identities))


class CountingCatalog(IndexCatalog):
    def __init__(self, releases) -> None:
        super().__init__(releases)
        self.dependency_lookups: list[str] = []

    def dependencies_of(self, release):
        self.dependency_lookups.append(str(release))
        return super().dependencies_of(release)


class TestResolveDependencies(unittest.TestCase):
    def test_expands_transitive_closure(self) -> None:
        catalog = IndexCatalog(
            [
                _rel("Foo", "2.0", "Bar@1.0", "Baz@1.0"),
                _rel("Foo", "1.0"),
                _rel("Bar", "1.0"),
                _rel("Bar", "1.1"),
                _rel("Baz", "1.0", "Qux"),
                _rel("Qux", "0.9"),
                _rel("Qux", "1.0"),
            ]
        )

        closure = resolve_dependencies(catalog, LibraryIdentity("Foo", "2.0"))

        self.assertEqual(closure.names(), ["Bar", "Baz", "Foo", "Qux"])
        self.assertEqual(
            {ident.name: ident.version_required for ident in closure},
            {"Foo": "2.0", "Bar": "1.0", "Baz": "1.0", "Qux": "1.0"},
        )
        self.assertEqual(closure.releases["Qux"].version, "1.0")
        self.assertIn("Foo", closure)
        self.assertEqual(len(closure), 4)

    def test_conflict_detected_whichever_path_is_walked_first(self) -> None:
        for first, second in (("Left", "Right"), ("Right", "Left")):
            with self.subTest(first=first):
                catalog = IndexCatalog(
                    [
                        _rel("Root", "1.0", first, second),
                        _rel(first, "1.0", "Shared@1.0"),
                        _rel(second, "1.0", "Shared@2.0"),
                        _rel("Shared", "1.0"),
                        _rel("Shared", "2.0"),
                    ]
                )

                with self.assertRaises(DependencyResolutionError) as ctx:
                    resolve_dependencies(catalog, LibraryIdentity("Root", "1.0"))

                self.assertEqual(ctx.exception.name, "Shared")
                self.assertEqual(ctx.exception.versions, ("1.0", "2.0"))
                self.assertIn("Shared", str(ctx.exception))
                self.assertIn("1.0 and 2.0", str(ctx.exception))

    def test_conflict_with_root_version(self) -> None:
        catalog = IndexCatalog(
            [
                _rel("Foo", "2.0", "Bar@1.0"),
                _rel("Foo", "1.0"),
                _rel("Bar", "1.0", "Foo@1.0"),
            ]
        )

        with self.assertRaises(DependencyResolutionError) as ctx:
            resolve_dependencies(catalog, LibraryIdentity("Foo", "2.0"))

        self.assertEqual(ctx.exception.name, "Foo")
        self.assertEqual(ctx.exception.versions, ("1.0", "2.0"))

    def test_latest_and_explicit_latest_do_not_conflict(self) -> None:
        catalog = IndexCatalog(
            [
                _rel("Root", "1.0", "A", "B"),
                _rel("A", "1.0", "Lib"),
                _rel("B", "1.0", "Lib@ 2.0 "),
                _rel("Lib", "1.0"),
                _rel("Lib", "2.0"),
            ]
        )

        closure = resolve_dependencies(catalog, LibraryIdentity("Root", "latest"))

        self.assertEqual(closure.releases["Lib"].version, "2.0")
        self.assertEqual(closure.root, LibraryIdentity("Root", ""))

    def test_cycles_terminate(self) -> None:
        catalog = IndexCatalog([_rel("A", "1.0", "B"), _rel("B", "1.0", "A")])

        closure = resolve_dependencies(catalog, LibraryIdentity("A", ""))

        self.assertEqual(closure.names(), ["A", "B"])

    def test_missing_dependency_raises_not_found(self) -> None:
        catalog = IndexCatalog([_rel("Foo", "1.0", "Ghost@3.0")])

        with self.assertRaises(LibraryNotFoundError) as ctx:
            resolve_dependencies(catalog, LibraryIdentity("Foo", ""))

        self.assertEqual(ctx.exception.name, "Ghost")
        self.assertEqual(ctx.exception.version, "3.0")

    def test_no_deps_returns_root_only(self) -> None:
        catalog = CountingCatalog([_rel("Foo", "1.0", "Bar@1.0"), _rel("Bar", "1.0")])

        closure = resolve_dependencies(catalog, LibraryIdentity(" Foo ", " 1.0 "), no_deps=True)

        self.assertEqual(closure.names(), ["Foo"])
        self.assertEqual(closure.requirements["Foo"], LibraryIdentity("Foo", "1.0"))
        self.assertEqual(closure.releases, {})
        self.assertEqual(catalog.dependency_lookups, [])

    def test_no_overwrite_keeps_installed_dependency_version(self) -> None:
        catalog = IndexCatalog(
            [
                _rel("Foo", "1.0", "Bar"),
                _rel("Bar", "1.0"),
                _rel("Bar", "2.0"),
            ]
        )
        installed = {"Bar": "1.0"}

        kept = resolve_dependencies(
            catalog,
            LibraryIdentity("Foo", ""),
            no_overwrite=True,
            installed_version=installed.get,
        )
        upgraded = resolve_dependencies(catalog, LibraryIdentity("Foo", ""), installed_version=installed.get)

        self.assertEqual(kept.releases["Bar"].version, "1.0")
        self.assertEqual(upgraded.releases["Bar"].version, "2.0")


if __name__ == "__main__":
    unittest.main()
