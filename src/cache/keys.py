# src/cache/keys.py - v1
"""Cache key derivation.

A key is derived only from (name, version, integrity hash, architecture).
Two environments whose packages map to identical keys are
installation-equivalent.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

from envrestore.core.models import PackageSpec


@dataclass(frozen=True)
class CacheKey:
    name: str
    version: str
    integrity_hash: str
    arch: str

    @classmethod
    def for_package(cls, spec: PackageSpec, arch: str) -> CacheKey:
        return cls(
            name=spec.name,
            version=spec.version,
            integrity_hash=spec.integrity_hash,
            arch=arch,
        )

    @property
    def digest(self) -> str:
        canonical = json.dumps(self.to_payload(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "integrity_hash": self.integrity_hash,
            "arch": self.arch,
        }

    def __str__(self) -> str:
        return f"{self.name}@{self.version}[{self.arch}]"
