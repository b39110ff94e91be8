from __future__ import annotations

import math
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Protocol, Union

import cv2
import numpy as np

from smileframes.config import MAX_SOURCE_BYTES, SamplingConfig, VideoConfig
from smileframes.errors import SourceLoadFailed
from smileframes.utils.logging import setup_logger


logger = setup_logger()

VideoInput = Union[str, os.PathLike, BinaryIO]

_CHUNK = 8 * 1024 * 1024


class VideoSource(Protocol):
    duration: float
    width: int
    height: int

    def read_at(self, timestamp: float) -> Optional[np.ndarray]: ...

    def release(self) -> None: ...


class SourceBinding:
    """
    A filesystem path for the decoder. File-like inputs are spooled to a
    temporary file which `revoke()` deletes.
    """

    def __init__(self, path: Path, temporary: bool = False) -> None:
        self.path = path
        self.temporary = temporary

    @classmethod
    def create(cls, source: VideoInput, max_bytes: int = MAX_SOURCE_BYTES) -> "SourceBinding":
        if isinstance(source, (str, os.PathLike)):
            p = Path(source)
            if not p.is_file():
                raise SourceLoadFailed(f"Video file not found: {p}")
            size = p.stat().st_size
            if size > max_bytes:
                raise SourceLoadFailed(f"Video file is too large ({size} bytes, limit {max_bytes}).")
            return cls(p, temporary=False)

        if not hasattr(source, "read"):
            raise SourceLoadFailed(f"Unsupported video source: {type(source).__name__}")

        suffix = Path(getattr(source, "name", "") or "").suffix or ".mp4"
        tmp = tempfile.NamedTemporaryFile(prefix="smileframes_", suffix=suffix, delete=False)
        binding = cls(Path(tmp.name), temporary=True)
        written = 0
        try:
            with tmp:
                while True:
                    chunk = source.read(_CHUNK)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > max_bytes:
                        raise SourceLoadFailed(f"Video stream is too large (limit {max_bytes} bytes).")
                    tmp.write(chunk)
        except SourceLoadFailed:
            binding.revoke()
            raise
        except (OSError, ValueError) as e:
            binding.revoke()
            raise SourceLoadFailed(f"Could not read video stream: {e}") from e
        if written == 0:
            binding.revoke()
            raise SourceLoadFailed("Video stream is empty.")
        return binding

    def revoke(self) -> None:
        if not self.temporary:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temporary video {self.path}: {e}")
        self.temporary = False


class OpenCVVideoSource:
    def __init__(self, cap: "cv2.VideoCapture", binding: SourceBinding, grab_ahead_frames: int = 30) -> None:
        self._cap = cap
        self._binding = binding
        self.grab_ahead_frames = int(grab_ahead_frames)
        self.fps = float(cap.get(cv2.CAP_PROP_FPS) or 0.0)
        self.frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        self.width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        self.height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        self.duration = self.frame_count / self.fps if self.fps > 0 else 0.0
        self._next_index = 0

    @property
    def path(self) -> Path:
        return self._binding.path

    def read_at(self, timestamp: float) -> Optional[np.ndarray]:
        """Decode the frame nearest to `timestamp` (BGR, source resolution), or None."""
        if self._cap is None:
            return None
        target = int(round(max(0.0, timestamp) * self.fps))
        target = max(0, min(target, self.frame_count - 1))
        ahead = target - self._next_index
        if self._next_index >= 0 and 0 <= ahead <= self.grab_ahead_frames:
            for _ in range(ahead):
                if not self._cap.grab():
                    self._next_index = -1
                    return None
        else:
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, target)
        ok, frame = self._cap.read()
        if not ok or frame is None:
            self._next_index = -1
            return None
        pos = int(self._cap.get(cv2.CAP_PROP_POS_FRAMES) or 0)
        self._next_index = pos if pos > 0 else target + 1
        return frame

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self._binding.revoke()


def open_video(source: VideoInput, config: Optional[VideoConfig] = None) -> OpenCVVideoSource:
    config = config or VideoConfig()
    binding = SourceBinding.create(source, config.max_source_bytes)
    cap = cv2.VideoCapture(str(binding.path))
    if not cap.isOpened():
        cap.release()
        binding.revoke()
        raise SourceLoadFailed("Video processing failed. Please ensure the video file is valid and not corrupted.")
    video = OpenCVVideoSource(cap, binding, grab_ahead_frames=config.grab_ahead_frames)
    if video.duration <= 0 or video.width <= 0 or video.height <= 0:
        video.release()
        raise SourceLoadFailed("Could not determine video duration or frame size.")
    logger.info(
        f"Opened video {video.width}x{video.height} @ {video.fps:.2f} fps, "
        f"{video.duration / 60.0:.1f} min ({video.frame_count} frames)"
    )
    return video


@dataclass(frozen=True)
class SampleSchedule:
    duration: float
    fps: float

    @classmethod
    def for_duration(cls, duration: float, sampling: Optional[SamplingConfig] = None) -> "SampleSchedule":
        sampling = sampling or SamplingConfig()
        fps = sampling.rate_for(duration)
        if fps <= 0:
            raise ValueError(f"Sample rate must be positive, got {fps}")
        return cls(duration=float(duration), fps=fps)

    @property
    def total(self) -> int:
        if self.duration <= 0:
            return 0
        return max(1, int(math.floor(self.duration * self.fps)))

    def times(self) -> List[float]:
        return [i / self.fps for i in range(self.total)]

    def __iter__(self) -> Iterator[float]:
        return iter(self.times())

    def __len__(self) -> int:
        return self.total
