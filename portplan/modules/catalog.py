# portplan/modules/catalog.py
"""
Port catalog - read-only lookup from port name to declared metadata.

Ports live in ``<recipes_dir>/<name>/recipe.yaml`` (or ``recipe.json``):

    name: zlib
    version: "1.2.11"
    depends: []
    features: [static]
    build:
      - ./configure --prefix="$PORTPLAN_PREFIX"
      - make install

Recipes are parsed lazily and cached, misses included, so a catalog behaves as
a stable snapshot for the whole command.
"""

from __future__ import annotations
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import yaml

from portplan.modules import logger as _logger
from portplan.modules.identity import is_valid_name

LOG = _logger.Logger("catalog")

RECIPE_FILES = ("recipe.yaml", "recipe.yml", "recipe.json")


class RecipeError(Exception):
    pass


def _as_names(value: Any, field: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise RecipeError(f"Field '{field}' must be a list")
    names = []
    for item in value:
        name = str(item).strip()
        if name and name not in names:
            names.append(name)
    return tuple(names)


@dataclass(frozen=True)
class PortMetadata:
    name: str
    version: str
    dependencies: Tuple[str, ...] = ()
    features: Tuple[str, ...] = ()
    build_commands: Tuple[str, ...] = ()
    port_dir: Optional[str] = None

    @classmethod
    def from_recipe(cls, recipe: Dict[str, Any], port_dir: Optional[str] = None) -> "PortMetadata":
        if not isinstance(recipe, dict):
            raise RecipeError("Recipe must be a mapping")
        missing = [f for f in ("name", "version") if recipe.get(f) in (None, "")]
        if missing:
            raise RecipeError(f"Missing required fields: {missing}")
        if not isinstance(recipe["version"], (str, int, float)):
            raise RecipeError("Field 'version' must be a string or a number")
        dependencies = _as_names(recipe.get("depends", recipe.get("dependencies")), "depends")
        bad = [d for d in dependencies if not is_valid_name(d)]
        if bad:
            raise RecipeError(f"Invalid dependency names: {bad}")
        return cls(
            name=str(recipe["name"]),
            version=str(recipe["version"]),
            dependencies=dependencies,
            features=_as_names(recipe.get("features"), "features"),
            build_commands=_as_names(recipe.get("build"), "build"),
            port_dir=port_dir,
        )


class PortCatalog:
    def __init__(self, ports: Optional[Dict[str, PortMetadata]] = None, recipes_dir: Optional[str] = None):
        self.recipes_dir = os.path.abspath(recipes_dir) if recipes_dir else None
        self._cache: Dict[str, Optional[PortMetadata]] = dict(ports or {})

    @classmethod
    def from_directory(cls, recipes_dir: str) -> "PortCatalog":
        return cls(recipes_dir=recipes_dir)

    def lookup(self, name: str) -> Optional[PortMetadata]:
        if name not in self._cache:
            self._cache[name] = self._load(name)
        return self._cache[name]

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not None

    def _load(self, name: str) -> Optional[PortMetadata]:
        if not self.recipes_dir:
            return None
        base = os.path.join(self.recipes_dir, name)
        if not os.path.isdir(base):
            LOG.debug(f"No port directory for {name}")
            return None
        for fn in RECIPE_FILES:
            path = os.path.join(base, fn)
            if not os.path.exists(path):
                continue
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    if fn.endswith(".json"):
                        recipe = json.load(fh)
                    else:
                        recipe = yaml.safe_load(fh) or {}
                meta = PortMetadata.from_recipe(recipe, port_dir=base)
            except (OSError, ValueError, yaml.YAMLError, RecipeError) as e:
                LOG.error(f"Failed to parse recipe {path}: {e}")
                return None
            if meta.name != name:
                LOG.error(f"Recipe {path} declares name '{meta.name}', expected '{name}'")
                return None
            return meta
        return None
