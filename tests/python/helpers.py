"""Helpers shared by the self_updater tests."""

import io
import json
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from aiohttp.test_utils import TestServer

from self_updater.models import VersionDescriptor


@dataclass
class FileServer:
    """In-process HTTP server serving byte blobs by name."""

    server: Optional[TestServer] = None
    files: Dict[str, bytes] = field(default_factory=dict)
    hits: List[str] = field(default_factory=list)

    def url(self, name: str) -> str:
        return str(self.server.make_url(f"/{name}"))

    def add(self, name: str, content: bytes) -> str:
        self.files[name] = content
        return self.url(name)

    def add_manifest(self, name: str = "ver.upd", version: str = "1.0.0", files=None) -> str:
        return self.add(name, json.dumps(manifest_dict(version, files)).encode("utf-8"))


def manifest_dict(version: str = "1.0.0", files=None, **extra) -> dict:
    data = {
        "productName": "Demo",
        "version": version,
        "versionName": "Release",
        "desc": "Demo release",
        "files": list(files or []),
    }
    data.update(extra)
    return data


def make_descriptor(version: str = "1.0.0", files=None, **extra) -> VersionDescriptor:
    return VersionDescriptor.model_validate(manifest_dict(version, files, **extra))


def zip_bytes(entries: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def snapshot(root: Path) -> Dict[str, Optional[bytes]]:
    """Map every file and directory below root to its bytes (None for directories)."""
    return {
        path.relative_to(root).as_posix(): (path.read_bytes() if path.is_file() else None)
        for path in sorted(root.rglob("*"))
    }
