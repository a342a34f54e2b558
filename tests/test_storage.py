import os
from pathlib import Path

import pytest

from drone_link.errors import MediaStorageError
from drone_link.storage import MediaStore, sanitize_name


class StepClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.value = start

    def __call__(self) -> int:
        self.value += 1
        return self.value


@pytest.fixture
def store(tmp_path: Path) -> MediaStore:
    media = MediaStore(tmp_path / "media", clock_ms=StepClock())
    media.initialize()
    return media


def test_initialize_creates_directories(store: MediaStore) -> None:
    assert store.photos_dir.is_dir()
    assert store.videos_dir.is_dir()


def test_save_photo_uses_timestamped_name(store: MediaStore) -> None:
    path = store.save_photo(b"\xff\xd8jpeg", "front door")

    assert path.parent == store.photos_dir
    assert path.name == "photo_1700000000001_front_door.jpg"
    assert path.read_bytes() == b"\xff\xd8jpeg"


def test_save_video_uses_raw_suffix(store: MediaStore) -> None:
    path = store.save_video(b"\x00\x00\x00\x01", "flight")

    assert path.parent == store.videos_dir
    assert path.suffix == ".h264"
    assert path.name.startswith("video_")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("garden", "garden"),
        ("../../etc/passwd", "etc_passwd"),
        ("  ", "capture"),
        ("a b/c", "a_b_c"),
    ],
)
def test_sanitize_name(raw: str, expected: str) -> None:
    assert sanitize_name(raw) == expected


def test_list_media_newest_first(store: MediaStore) -> None:
    old = store.save_photo(b"old", "old")
    new = store.save_video(b"newer", "new")
    os.utime(old, (1_000, 1_000))
    os.utime(new, (2_000, 2_000))

    items = store.list_media()

    assert [item.path for item in items] == [new, old]
    assert [item.kind for item in items] == ["videos", "photos"]
    assert items[0].size == 5


def test_list_media_filters_by_kind(store: MediaStore) -> None:
    store.save_photo(b"p", "p")
    store.save_video(b"v", "v")

    assert [item.kind for item in store.list_media("photos")] == ["photos"]
    assert [item.kind for item in store.list_media("videos")] == ["videos"]


def test_list_media_rejects_unknown_kind(store: MediaStore) -> None:
    with pytest.raises(ValueError):
        store.list_media("audio")


def test_list_media_without_directories(tmp_path: Path) -> None:
    assert MediaStore(tmp_path / "missing").list_media() == []


def test_delete_removes_file(store: MediaStore) -> None:
    path = store.save_photo(b"p", "p")

    store.delete(path)

    assert not path.exists()


def test_delete_refuses_paths_outside_root(store: MediaStore, tmp_path: Path) -> None:
    outside = tmp_path / "keep.txt"
    outside.write_text("keep", encoding="utf-8")

    with pytest.raises(MediaStorageError):
        store.delete(outside)

    assert outside.exists()


def test_write_failure_raises_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "media"
    blocker.write_text("not a directory", encoding="utf-8")
    media = MediaStore(blocker)

    with pytest.raises(MediaStorageError):
        media.save_photo(b"p", "p")
