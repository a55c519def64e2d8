import asyncio
import os
import shutil
import subprocess
from pathlib import Path
from unittest import mock
from urllib.parse import urlparse

import jwt
import pytest
from fastapi.testclient import TestClient

from reelhouse.core.config import get_settings
from reelhouse.core.db import Base, create_engine
from reelhouse.core.errors import ProcessingError
from reelhouse.core.storage import Storage
from reelhouse.main import create_app
from reelhouse.media.faststart import StreamOptimizer, output_path_for
from reelhouse.media.geometry import Geometry, GeometryInspector
import reelhouse.db.models  # noqa: F401

FASTSTART_MARKER = b"FASTSTART:"


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default Reelhouse environment bootstrap fixture for tests that manage their own .env",
    )


class FakeInspector(GeometryInspector):
    """Reports a fixed geometry and records which files it was asked about."""

    def __init__(self, geometry: Geometry = Geometry.landscape):
        self.geometry = geometry
        self.calls: list[Path] = []

    async def inspect(self, path: Path) -> Geometry:
        assert path.is_file()
        self.calls.append(path)
        return self.geometry


class FakeOptimizer(StreamOptimizer):
    """Writes ``FASTSTART_MARKER + original bytes`` where ffmpeg would write its output."""

    async def optimize(self, path: Path) -> Path:
        target = output_path_for(path)
        target.write_bytes(FASTSTART_MARKER + path.read_bytes())
        return target


class FailingOptimizer(StreamOptimizer):
    """Leaves a partial output behind and fails like a broken ffmpeg run."""

    async def optimize(self, path: Path) -> Path:
        output_path_for(path).write_bytes(b"partial")
        raise ProcessingError(f"Failed to process video for fast start {path.name}", stderr="moov atom not found")


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    with mock.patch.dict(os.environ):
        if request.node.get_closest_marker("no_default_env"):
            get_settings.cache_clear()
            yield
            get_settings.cache_clear()
            return
        db_path = tmp_path / "reelhouse_test.db"
        assets_root = tmp_path / "assets"

        monkeypatch.setenv("REELHOUSE_ENV", "test")
        monkeypatch.setenv("REELHOUSE_LOG_LEVEL", "debug")
        monkeypatch.setenv("REELHOUSE_DB_URL", f"sqlite+aiosqlite:///{db_path}")
        monkeypatch.setenv("REELHOUSE_ASSETS_ROOT", str(assets_root))
        monkeypatch.setenv("REELHOUSE_STORAGE_BACKEND", "local")
        monkeypatch.setenv("REELHOUSE_JWT_SECRET", "test-secret")
        monkeypatch.delenv("REELHOUSE_LOCAL_STORAGE_BASE_PATH", raising=False)
        monkeypatch.delenv("REELHOUSE_JWT_ISSUER", raising=False)
        monkeypatch.delenv("REELHOUSE_JWT_AUDIENCE", raising=False)
        monkeypatch.delenv("REELHOUSE_MAX_VIDEO_UPLOAD_BYTES", raising=False)

        get_settings.cache_clear()
        settings = get_settings()
        engine = create_engine(settings)

        async def _setup() -> None:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        asyncio.run(_setup())

        yield settings

        async def _teardown() -> None:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
            await engine.dispose()

        asyncio.run(_teardown())
        get_settings.cache_clear()


@pytest.fixture()
def make_client(configure_environment):
    """Build a client around the given media fakes; callers may tweak env vars first."""
    clients: list[TestClient] = []

    def _make(
        *,
        inspector: GeometryInspector | None = None,
        optimizer: StreamOptimizer | None = None,
        storage: Storage | None = None,
    ) -> TestClient:
        get_settings.cache_clear()
        app = create_app(
            storage=storage,
            inspector=inspector or FakeInspector(),
            optimizer=optimizer or FakeOptimizer(),
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture()
def client(make_client):
    return make_client()


def build_token(user_id: str | None, *, scopes: list[str] | None = None) -> str:
    payload: dict[str, object] = {}
    if user_id:
        payload["sub"] = user_id
    if scopes:
        payload["scopes"] = scopes
    return jwt.encode(payload, "test-secret", algorithm="HS256")


@pytest.fixture()
def user_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('user-test')}"}


@pytest.fixture()
def other_user_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('user-other')}"}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('user-admin', scopes=['admin'])}"}


def uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        raise ValueError("Unsupported URI in tests")
    return Path(parsed.path)


def staged_leftovers(assets_root: Path) -> list[Path]:
    """Files sitting directly in the staging directory (the object store lives in a subdirectory)."""
    if not assets_root.exists():
        return []
    return [path for path in assets_root.iterdir() if path.is_file()]


def stored_objects(object_root: Path) -> list[Path]:
    if not object_root.exists():
        return []
    return sorted(path for path in object_root.rglob("*") if path.is_file())


requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg/ffprobe not installed",
)


def _generate_video(target: Path, size: str) -> Path:
    command = [
        "ffmpeg",
        "-f", "lavfi",
        "-i", f"color=c=black:s={size}:r=30",
        "-t", "1",
        "-pix_fmt", "yuv420p",
        str(target),
    ]
    subprocess.run(command, check=True, capture_output=True)
    return target


@pytest.fixture(scope="session")
def landscape_video_file(tmp_path_factory) -> Path:
    """A one second 128x72 (16:9) MP4 produced by ffmpeg."""
    if shutil.which("ffmpeg") is None:
        pytest.skip("ffmpeg not installed")
    return _generate_video(tmp_path_factory.mktemp("data") / "landscape.mp4", "128x72")


@pytest.fixture(scope="session")
def portrait_video_file(tmp_path_factory) -> Path:
    if shutil.which("ffmpeg") is None:
        pytest.skip("ffmpeg not installed")
    return _generate_video(tmp_path_factory.mktemp("data") / "portrait.mp4", "72x128")
