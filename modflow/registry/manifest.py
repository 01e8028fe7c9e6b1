"""Manifest cache: serialised descriptor set used to rehydrate a registry.

Registries are context-scoped; a host that builds a fresh context per unit of
work can skip its (external) discovery step by reloading the last manifest.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List

from modflow.errors import ManifestError

from .descriptor import ModuleDescriptor

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1


def build_manifest(descriptors: Iterable[ModuleDescriptor]) -> Dict[str, Any]:
    return {
        "manifest_version": MANIFEST_VERSION,
        "generated_at": time.time(),
        "modules": [d.to_manifest() for d in descriptors],
    }


def descriptors_from_manifest(data: Dict[str, Any]) -> List[ModuleDescriptor]:
    if data.get("manifest_version") != MANIFEST_VERSION:
        raise ManifestError(
            f"Unsupported manifest version: {data.get('manifest_version')!r}"
        )
    out: List[ModuleDescriptor] = []
    for raw in data.get("modules") or []:
        try:
            out.append(ModuleDescriptor.model_validate(raw))
        except Exception as e:  # noqa: BLE001
            name = raw.get("name") if isinstance(raw, dict) else None
            raise ManifestError(
                f"Invalid manifest entry {name!r}: {e}", context={"module": name}
            ) from e
    return out


class ManifestCache:
    """JSON file holding the last manifest, valid for ``ttl_s`` seconds."""

    def __init__(self, path: str | Path, ttl_s: float = 3600) -> None:
        self.path = Path(path)
        self.ttl_s = ttl_s
        self._lock = threading.Lock()

    def exists(self) -> bool:
        try:
            age = time.time() - self.path.stat().st_mtime
        except OSError:
            return False
        return age < self.ttl_s

    def load(self) -> Dict[str, Any]:
        with self._lock:
            if not self.exists():
                return {}
            try:
                return json.loads(self.path.read_text(encoding="utf-8")) or {}
            except FileNotFoundError:
                return {}
            except json.JSONDecodeError as e:
                raise ManifestError(f"Corrupt manifest cache {self.path}: {e}") from e

    def save(self, manifest: Dict[str, Any]) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        logger.info(
            "Module manifest cached: %s (%d modules)",
            self.path,
            len(manifest.get("modules") or []),
        )

    def clear(self) -> None:
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
