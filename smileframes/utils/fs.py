from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, List

from smileframes.models import ExtractedFrame


def ensure_dir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def write_json(path: str | Path, data: Any) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def save_frames(frames: Iterable[ExtractedFrame], out_dir: str | Path) -> List[Path]:
    """Write each frame as `smile-frame-<t>s.jpg`. Frames sharing a name get a rank suffix."""
    root = ensure_dir(out_dir)
    written: List[Path] = []
    for rank, frame in enumerate(frames, start=1):
        dst = root / frame.filename
        if dst in written:
            dst = dst.with_name(f"{dst.stem}_{rank:03d}{dst.suffix}")
        dst.write_bytes(frame.image)
        written.append(dst)
    return written
