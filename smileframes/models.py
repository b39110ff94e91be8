from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Dict


def new_frame_id() -> str:
    return f"frame-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class ExtractedFrame:
    """One retained smile frame. `image` is a JPEG at source resolution."""

    timestamp: float
    confidence: float
    image: bytes = field(repr=False)
    width: int = 0
    height: int = 0
    id: str = field(default_factory=new_frame_id)

    @property
    def filename(self) -> str:
        return f"smile-frame-{self.timestamp:.2f}s.jpg"

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "timestamp": round(float(self.timestamp), 3),
            "confidence": round(float(self.confidence), 4),
            "width": self.width,
            "height": self.height,
            "filename": self.filename,
        }


@dataclass(frozen=True)
class ProcessingStats:
    total_frames: int = 0
    processed_frames: int = 0
    smiling_faces: int = 0
    is_processing: bool = False


@dataclass
class ProcessingOptions:
    extract_all: bool = False
    max_extract: int = 5

    def __post_init__(self) -> None:
        if int(self.max_extract) < 1:
            raise ValueError(f"max_extract must be >= 1, got {self.max_extract}")
        self.max_extract = int(self.max_extract)
