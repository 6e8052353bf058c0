import base64

import cv2
import numpy as np
import pytest

from contour_points.resources import BufferScope
from contour_points.utils import downscale, image_to_base64, scaled_size


def test_downscale_leaves_small_image_untouched(backend):
    img = np.zeros((600, 1200, 3), dtype=np.uint8)
    with BufferScope(backend) as scope:
        scope.own(img)
        out = downscale(scope, img, 1200)
        assert out is img
    assert backend.allocations == 0
    assert backend.releases == 1


def test_downscale_bounds_landscape_image(backend):
    img = np.zeros((1000, 2000, 3), dtype=np.uint8)
    with BufferScope(backend) as scope:
        scope.own(img)
        out = downscale(scope, img, 1200)
        assert out.shape[:2] == (600, 1200)
        assert not scope.owns(img)
        assert scope.owns(out)
        assert backend.releases == 1
    assert backend.allocations == 1
    assert backend.releases == 2


def test_downscale_keeps_portrait_aspect_ratio(backend):
    img = np.zeros((3000, 899, 3), dtype=np.uint8)
    with BufferScope(backend) as scope:
        scope.own(img)
        out = downscale(scope, img, 1200)
    h, w = out.shape[:2]
    assert max(h, w) == 1200
    assert abs(w / h - 899 / 3000) < 1.0 / 1200


def test_scaled_size_never_upscales():
    assert scaled_size(100, 50, 1200) is None
    assert scaled_size(1200, 1200, 1200) is None
    assert scaled_size(1201, 10, 1200) == (1200, 10)
    assert scaled_size(5000, 1, 1200) == (1200, 1)


def test_backend_decode_rejects_garbage(backend):
    with pytest.raises(ValueError, match="Failed to decode image: notes.txt"):
        backend.decode(b"definitely not a png", "notes.txt")
    with pytest.raises(ValueError, match="is empty"):
        backend.decode(b"", "empty.png")
    assert backend.allocations == 0


def test_backend_decode_reads_png(backend, shapes_png, shapes):
    img = backend.decode(shapes_png)
    assert img.shape == shapes.shape
    assert np.array_equal(img, shapes)
    assert backend.allocations == 1


def test_image_to_base64_round_trips_frame(shapes):
    data = base64.b64decode(image_to_base64(shapes))
    decoded = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
    assert np.array_equal(decoded, shapes)
