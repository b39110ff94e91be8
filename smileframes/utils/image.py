from __future__ import annotations

import io
from typing import Tuple

import cv2
import numpy as np
from PIL import Image


MAX_ANALYSIS_WIDTH = 1200
MAX_ANALYSIS_HEIGHT = 900


def analysis_size(
    width: int,
    height: int,
    max_width: int = MAX_ANALYSIS_WIDTH,
    max_height: int = MAX_ANALYSIS_HEIGHT,
) -> Tuple[int, int]:
    """Aspect-preserving size for the detection raster. Landscape is bounded by width, portrait by height."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid frame size {width}x{height}")
    aspect = width / float(height)
    if aspect > 1:
        w = min(max_width, width)
        h = w / aspect
    else:
        h = min(max_height, height)
        w = h * aspect
    return max(1, int(round(w))), max(1, int(round(h)))


def to_analysis_raster(
    frame_bgr: np.ndarray,
    max_width: int = MAX_ANALYSIS_WIDTH,
    max_height: int = MAX_ANALYSIS_HEIGHT,
) -> np.ndarray:
    h, w = frame_bgr.shape[:2]
    new_w, new_h = analysis_size(w, h, max_width, max_height)
    if (new_w, new_h) == (w, h):
        return frame_bgr
    return cv2.resize(frame_bgr, (new_w, new_h), interpolation=cv2.INTER_AREA)


def encode_jpeg(frame_bgr: np.ndarray, quality: int = 98) -> bytes:
    """Encode a full-resolution BGR frame as JPEG bytes."""
    rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
    buf = io.BytesIO()
    Image.fromarray(rgb).save(buf, format="JPEG", quality=int(quality))
    return buf.getvalue()


def crop_with_margin(img: np.ndarray, bbox_xywh: Tuple[int, int, int, int], margin: float = 0.2) -> np.ndarray:
    x, y, w, h = bbox_xywh
    H, W = img.shape[:2]
    cx, cy = x + w / 2.0, y + h / 2.0
    mw, mh = int(w * (1 + margin)), int(h * (1 + margin))
    x1 = max(0, int(cx - mw / 2))
    y1 = max(0, int(cy - mh / 2))
    x2 = min(W, int(cx + mw / 2))
    y2 = min(H, int(cy + mh / 2))
    return img[y1:y2, x1:x2]
