"""Shared fixtures for the self_updater tests."""

import json
from pathlib import Path

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from helpers import FileServer, manifest_dict


@pytest.fixture
async def file_server():
    """Serve files registered with FileServer.add() over HTTP."""
    fs = FileServer()

    async def handler(request: web.Request) -> web.Response:
        name = request.match_info["name"]
        fs.hits.append(name)
        if name not in fs.files:
            raise web.HTTPNotFound()
        return web.Response(body=fs.files[name])

    app = web.Application()
    app.router.add_get("/{name}", handler)
    fs.server = TestServer(app)
    await fs.server.start_server()
    yield fs
    await fs.server.close()


@pytest.fixture
def working_dir(tmp_path: Path) -> Path:
    path = tmp_path / "app"
    path.mkdir()
    return path


@pytest.fixture
def write_manifest(working_dir: Path):
    def _write(version: str = "1.0.0", files=None, name: str = "ver.upd") -> Path:
        path = working_dir / name
        path.write_text(json.dumps(manifest_dict(version, files)), encoding="utf-8")
        return path

    return _write
