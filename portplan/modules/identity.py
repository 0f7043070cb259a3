# portplan/modules/identity.py
"""
Package identities: a port name combined with a target triplet.

Command-line arguments take the form ``name`` or ``name:triplet``; the
configured default triplet fills in when none is given.
"""

from __future__ import annotations
import re
from dataclasses import dataclass

_IDENTIFIER = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class InvalidSpecError(ValueError):
    pass


def is_valid_name(text: str) -> bool:
    return bool(_IDENTIFIER.match(text or ""))


@dataclass(frozen=True, order=True)
class PackageSpec:
    name: str
    triplet: str

    def __post_init__(self):
        if not is_valid_name(self.name):
            raise InvalidSpecError(f"Invalid package name: {self.name!r}")
        if not is_valid_name(self.triplet):
            raise InvalidSpecError(f"Invalid triplet: {self.triplet!r}")

    def __str__(self) -> str:
        return f"{self.name}:{self.triplet}"

    def with_name(self, name: str) -> "PackageSpec":
        """Identity of another port on the same triplet (how dependencies are addressed)."""
        return PackageSpec(name, self.triplet)

    @classmethod
    def parse(cls, text: str, default_triplet: str) -> "PackageSpec":
        raw = (text or "").strip().lower()
        if raw.count(":") > 1:
            raise InvalidSpecError(f"Invalid package spec: {text!r} (expected name[:triplet])")
        name, _, triplet = raw.partition(":")
        return cls(name, triplet or default_triplet)
