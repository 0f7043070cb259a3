"""Tests for the recipe-backed catalog, the installed registry and outdated discovery."""

import json

import pytest
import yaml

from portplan.modules.catalog import PortCatalog, PortMetadata, RecipeError
from portplan.modules.registry import InstallState, InstalledRegistry
from portplan.modules.upgrade import OutdatedPackage, find_outdated_packages


def write_recipe(root, name, recipe, filename="recipe.yaml"):
    port_dir = root / name
    port_dir.mkdir(parents=True, exist_ok=True)
    path = port_dir / filename
    if filename.endswith(".json"):
        path.write_text(json.dumps(recipe))
    else:
        path.write_text(yaml.safe_dump(recipe))
    return port_dir


class TestPortCatalog:
    def test_loads_yaml_recipe(self, tmp_path):
        port_dir = write_recipe(tmp_path, "zlib", {
            "name": "zlib", "version": 1.2, "depends": ["base"], "features": ["static"],
            "build": ["make", "make install"],
        })
        meta = PortCatalog.from_directory(str(tmp_path)).lookup("zlib")
        assert meta == PortMetadata("zlib", "1.2", ("base",), ("static",), ("make", "make install"), str(port_dir))

    def test_loads_json_recipe(self, tmp_path):
        write_recipe(tmp_path, "png", {"name": "png", "version": "1.6"}, filename="recipe.json")
        assert PortCatalog.from_directory(str(tmp_path)).lookup("png").version == "1.6"

    def test_missing_port(self, tmp_path):
        catalog = PortCatalog.from_directory(str(tmp_path))
        assert catalog.lookup("nope") is None
        assert "nope" not in catalog

    def test_invalid_recipe_is_treated_as_missing(self, tmp_path):
        write_recipe(tmp_path, "broken", {"name": "broken"})
        assert PortCatalog.from_directory(str(tmp_path)).lookup("broken") is None

    def test_name_mismatch_is_treated_as_missing(self, tmp_path):
        write_recipe(tmp_path, "zlib", {"name": "other", "version": "1"})
        assert PortCatalog.from_directory(str(tmp_path)).lookup("zlib") is None

    def test_lookups_are_cached(self, tmp_path):
        write_recipe(tmp_path, "zlib", {"name": "zlib", "version": "1"})
        catalog = PortCatalog.from_directory(str(tmp_path))
        first = catalog.lookup("zlib")
        write_recipe(tmp_path, "zlib", {"name": "zlib", "version": "2"})
        assert catalog.lookup("zlib") is first

    def test_depends_must_be_a_list(self):
        with pytest.raises(RecipeError):
            PortMetadata.from_recipe({"name": "a", "version": "1", "depends": {"b": 1}})

    def test_invalid_dependency_name_is_rejected(self, tmp_path):
        with pytest.raises(RecipeError, match="Lib_X"):
            PortMetadata.from_recipe({"name": "a", "version": "1", "depends": ["Lib_X"]})
        write_recipe(tmp_path, "app", {"name": "app", "version": "1", "depends": ["Lib_X"]})
        assert PortCatalog.from_directory(str(tmp_path)).lookup("app") is None


class TestInstalledRegistry:
    def test_round_trip_through_file(self, tmp_path, spec):
        db = tmp_path / "state" / "installed_db.json"
        registry = InstalledRegistry(str(db))
        registry.record_install(spec("zlib"), "1.2", features=("static",), depends=("base",))

        reloaded = InstalledRegistry(str(db))
        record = reloaded.lookup(spec("zlib"))
        assert record.version == "1.2"
        assert record.depends == ("base",)
        assert record.is_installed
        assert "zlib:x64-linux" in json.loads(db.read_text())

    def test_half_installed_state(self, tmp_path, spec):
        registry = InstalledRegistry(str(tmp_path / "db.json"))
        registry.mark_half_installed(spec("zlib"), "1.2")
        record = InstalledRegistry(str(tmp_path / "db.json")).lookup(spec("zlib"))
        assert record.state is InstallState.HALF_INSTALLED
        assert not record.is_installed

    def test_remove(self, make_registry, spec):
        registry = make_registry({"zlib": "1"})
        assert registry.remove(spec("zlib"))
        assert not registry.remove(spec("zlib"))

    def test_snapshot_is_frozen(self, make_registry, spec):
        registry = make_registry({"zlib": "1"})
        snapshot = registry.snapshot()
        registry.record_install(spec("png"), "1.6")
        registry.remove(spec("zlib"))
        assert snapshot.lookup(spec("zlib")).version == "1"
        assert snapshot.lookup(spec("png")) is None

    def test_malformed_entries_are_skipped(self, tmp_path, spec):
        db = tmp_path / "db.json"
        db.write_text(json.dumps({
            "zlib:x64-linux": {"version": "1"},
            "Bad Name:x64-linux": {"version": "1"},
        }))
        registry = InstalledRegistry(str(db))
        assert [r.spec for r in registry.records()] == [spec("zlib")]

    def test_single_string_lists_are_normalized(self, spec):
        registry = InstalledRegistry({
            "zlib:x64-linux": {"version": "1", "features": "core", "depends": " base "},
            "png:x64-linux": {"version": "1", "depends": 5},
        })
        record = registry.lookup(spec("zlib"))
        assert record.features == ("core",)
        assert record.depends == ("base",)
        assert registry.lookup(spec("png")) is None

    def test_unreadable_db_is_empty(self, tmp_path):
        db = tmp_path / "db.json"
        db.write_text("{not json")
        assert list(InstalledRegistry(str(db)).records()) == []


class TestFindOutdated:
    def test_reports_any_version_difference(self, make_catalog, make_snapshot, spec):
        catalog = make_catalog({"a": ("2", []), "b": ("1", []), "c": ("0.9", [])})
        snapshot = make_snapshot({
            "a": "1",
            "b": "1",
            "c": "1",
            "d": "1",
            "e": ("1", InstallState.HALF_INSTALLED),
        })
        assert find_outdated_packages(catalog, snapshot) == [
            OutdatedPackage(spec("a"), "1", "2"),
            OutdatedPackage(spec("c"), "1", "0.9"),
        ]
