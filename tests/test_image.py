import io

import numpy as np
import pytest
from PIL import Image

from smileframes.utils.image import analysis_size, crop_with_margin, encode_jpeg, to_analysis_raster


@pytest.mark.parametrize(
    "size,expected",
    [
        ((3840, 2160), (1200, 675)),
        ((2160, 3840), (506, 900)),
        ((640, 480), (640, 480)),
        ((1000, 1000), (900, 900)),
    ],
)
def test_analysis_size(size, expected):
    assert analysis_size(*size) == expected


def test_analysis_size_rejects_empty_frames():
    with pytest.raises(ValueError):
        analysis_size(0, 480)


def test_small_frames_are_not_resized():
    frame = np.zeros((48, 64, 3), dtype=np.uint8)
    assert to_analysis_raster(frame) is frame


def test_large_frames_are_downscaled():
    frame = np.zeros((2160, 3840, 3), dtype=np.uint8)
    assert to_analysis_raster(frame).shape == (675, 1200, 3)


def test_encode_jpeg_keeps_size_and_colour_order():
    frame = np.zeros((30, 40, 3), dtype=np.uint8)
    frame[:, :, 2] = 255  # red in BGR
    img = Image.open(io.BytesIO(encode_jpeg(frame)))
    assert img.format == "JPEG"
    assert img.size == (40, 30)
    r, g, b = img.convert("RGB").getpixel((20, 15))
    assert r > 200 and g < 60 and b < 60


def test_crop_with_margin_is_clipped_to_image():
    img = np.zeros((100, 100, 3), dtype=np.uint8)
    crop = crop_with_margin(img, (80, 80, 40, 40), margin=0.5)
    assert crop.shape[0] <= 100 - 70 and crop.shape[1] <= 100 - 70
    assert crop.size > 0
