from __future__ import annotations

import asyncio
import io
import uuid

import pytest
from sqlalchemy.exc import SQLAlchemyError

from reelhouse.core.config import get_settings
from reelhouse.core.errors import StorageError
from reelhouse.core.storage import LocalStorage
from reelhouse.db.models import Video
from reelhouse.services.video_service import UploadRequest, VideoService, _format_bytes
from tests.conftest import FakeInspector, FakeOptimizer, staged_leftovers, stored_objects


class BrokenCommitSession:
    """Looks a video up fine but fails to persist the new key."""

    def __init__(self, video: Video):
        self.video = video
        self.rolled_back = False

    async def get(self, model, key):
        return self.video if key == self.video.id else None

    async def commit(self):
        raise SQLAlchemyError("database is locked")

    async def rollback(self):
        self.rolled_back = True


class UndeletableStorage(LocalStorage):
    def delete(self, key):
        raise StorageError(f"Failed to delete object {key}: permission denied")


def _upload_request(video: Video) -> UploadRequest:
    return UploadRequest(
        video_id=video.id,
        user_id="user-test",
        stream=io.BytesIO(b"mp4-bytes"),
        content_type="video/mp4",
        size_bytes=9,
    )


@pytest.mark.parametrize(
    "size, expected",
    [
        (1 << 30, "1GB"),
        (5 * 1024 * 1024, "5MB"),
        (64 * 1024, "64KB"),
        (16, "16B"),
        (1536, "1536B"),
    ],
)
def test_format_bytes(size, expected):
    assert _format_bytes(size) == expected


def test_failed_record_update_removes_stored_object(configure_environment):
    settings = get_settings()
    storage = LocalStorage(settings.object_storage_path)
    video = Video(id=str(uuid.uuid4()), user_id="user-test", title="clip")
    session = BrokenCommitSession(video)
    service = VideoService(settings, storage, session, inspector=FakeInspector(), optimizer=FakeOptimizer())

    request = UploadRequest(
        video_id=video.id,
        user_id="user-test",
        stream=io.BytesIO(b"mp4-bytes"),
        content_type="video/mp4",
        size_bytes=9,
    )
    with pytest.raises(SQLAlchemyError):
        asyncio.run(service.upload_video(request))

    assert session.rolled_back
    assert stored_objects(settings.object_storage_path) == []
    assert staged_leftovers(settings.assets_root) == []


def test_signed_view_does_not_touch_record(configure_environment):
    settings = get_settings()
    storage = LocalStorage(settings.object_storage_path)
    service = VideoService(settings, storage, None, inspector=FakeInspector(), optimizer=FakeOptimizer())
    video = Video(id=str(uuid.uuid4()), user_id="user-test", title="clip", video_url="landscape/abc.mp4")

    view = service.signed_view(video)
    assert view["video_url"].startswith("file://")
    assert video.video_url == "landscape/abc.mp4"


def test_signed_view_without_upload_has_no_url(configure_environment):
    settings = get_settings()
    service = VideoService(
        settings,
        LocalStorage(settings.object_storage_path),
        None,
        inspector=FakeInspector(),
        optimizer=FakeOptimizer(),
    )
    video = Video(id=str(uuid.uuid4()), user_id="user-test", title="clip")
    assert service.signed_view(video)["video_url"] is None


def test_failed_cleanup_still_reports_database_error(configure_environment):
    settings = get_settings()
    storage = UndeletableStorage(settings.object_storage_path)
    video = Video(id=str(uuid.uuid4()), user_id="user-test", title="clip")
    service = VideoService(
        settings,
        storage,
        BrokenCommitSession(video),
        inspector=FakeInspector(),
        optimizer=FakeOptimizer(),
    )

    with pytest.raises(SQLAlchemyError):
        asyncio.run(service.upload_video(_upload_request(video)))
    assert len(stored_objects(settings.object_storage_path)) == 1
    assert staged_leftovers(settings.assets_root) == []


def test_staged_name_collision_leaves_other_file_alone(configure_environment, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr("reelhouse.services.video_service.generate_staged_name", lambda content_type: "taken.mp4")
    settings.assets_root.mkdir(parents=True, exist_ok=True)
    foreign = settings.assets_root / "taken.mp4"
    foreign.write_bytes(b"another request's upload")

    video = Video(id=str(uuid.uuid4()), user_id="user-test", title="clip")
    service = VideoService(
        settings,
        LocalStorage(settings.object_storage_path),
        BrokenCommitSession(video),
        inspector=FakeInspector(),
        optimizer=FakeOptimizer(),
    )

    with pytest.raises(FileExistsError):
        asyncio.run(service.upload_video(_upload_request(video)))
    assert foreign.read_bytes() == b"another request's upload"
    assert stored_objects(settings.object_storage_path) == []
