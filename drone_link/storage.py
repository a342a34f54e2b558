"""Filesystem persistence for captured photos and recordings."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from .constants import DEFAULT_MEDIA_PATH
from .errors import MediaStorageError

LOGGER = logging.getLogger(__name__)

PHOTOS_DIR = "photos"
VIDEOS_DIR = "videos"
PHOTO_SUFFIX = ".jpg"
VIDEO_SUFFIX = ".h264"  # raw stream bytes, not a container

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True, slots=True)
class MediaFile:
    path: Path
    kind: str
    size: int
    modified_at: datetime


def sanitize_name(name: str) -> str:
    cleaned = _UNSAFE_NAME.sub("_", name.strip()).strip("._")
    return cleaned or "capture"


class MediaStore:
    """Writes payloads under ``<root>/photos`` and ``<root>/videos``."""

    def __init__(
        self,
        root: Optional[Path] = None,
        *,
        clock_ms: Optional[Callable[[], int]] = None,
    ) -> None:
        self._root = root or DEFAULT_MEDIA_PATH
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))

    @property
    def root(self) -> Path:
        return self._root

    @property
    def photos_dir(self) -> Path:
        return self._root / PHOTOS_DIR

    @property
    def videos_dir(self) -> Path:
        return self._root / VIDEOS_DIR

    def initialize(self) -> None:
        try:
            self.photos_dir.mkdir(parents=True, exist_ok=True)
            self.videos_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise MediaStorageError(f"Cannot create media directories under {self._root}: {exc}") from exc

    def save_photo(self, payload: bytes, name: str) -> Path:
        filename = f"photo_{self._clock_ms()}_{sanitize_name(name)}{PHOTO_SUFFIX}"
        return self._write(self.photos_dir / filename, payload)

    def save_video(self, payload: bytes, name: str) -> Path:
        filename = f"video_{self._clock_ms()}_{sanitize_name(name)}{VIDEO_SUFFIX}"
        return self._write(self.videos_dir / filename, payload)

    def list_media(self, kind: str = "all") -> List[MediaFile]:
        """Return stored files, newest first."""
        if kind not in ("all", PHOTOS_DIR, VIDEOS_DIR):
            raise ValueError(f"Unknown media kind: {kind}")

        directories = []
        if kind in ("all", PHOTOS_DIR):
            directories.append((PHOTOS_DIR, self.photos_dir))
        if kind in ("all", VIDEOS_DIR):
            directories.append((VIDEOS_DIR, self.videos_dir))

        files: List[MediaFile] = []
        try:
            for label, directory in directories:
                if not directory.is_dir():
                    continue
                for path in directory.iterdir():
                    if not path.is_file():
                        continue
                    stat = path.stat()
                    files.append(
                        MediaFile(
                            path=path,
                            kind=label,
                            size=stat.st_size,
                            modified_at=datetime.fromtimestamp(stat.st_mtime, timezone.utc),
                        )
                    )
        except OSError as exc:
            raise MediaStorageError(f"Cannot list media under {self._root}: {exc}") from exc

        files.sort(key=lambda item: item.modified_at, reverse=True)
        return files

    def delete(self, path: Path) -> None:
        resolved = path.resolve()
        if self._root.resolve() not in resolved.parents:
            raise MediaStorageError(f"Refusing to delete {path}: outside {self._root}")
        try:
            resolved.unlink()
        except OSError as exc:
            raise MediaStorageError(f"Failed to delete {path}: {exc}") from exc
        LOGGER.info("Deleted %s", path)

    def _write(self, path: Path, payload: bytes) -> Path:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(payload)
        except OSError as exc:
            raise MediaStorageError(f"Failed to save {path.name}: {exc}") from exc
        LOGGER.info("Saved %d bytes to %s", len(payload), path)
        return path
