import io
import threading

import cv2
import numpy as np
import pytest
from werkzeug.datastructures import FileStorage

from contour_points.resources import OpenCVBackend
from contour_points.session import DetectionSession


def draw_shapes(width=400, height=300):
    """Black canvas with three separated white rectangles, one of them hollow."""
    img = np.zeros((height, width, 3), dtype=np.uint8)
    w, h = width // 8, height // 4
    for i in range(3):
        x = width // 8 + i * (w + width // 8)
        y = height // 3
        cv2.rectangle(img, (x, y), (x + w, y + h), (255, 255, 255), -1)
    # hole inside the last rectangle: an internal boundary, not an extra contour
    x = width // 8 + 2 * (w + width // 8)
    cv2.rectangle(img, (x + w // 4, height // 3 + h // 4), (x + 3 * w // 4, height // 3 + 3 * h // 4), (0, 0, 0), -1)
    return img


def encode_png(img):
    ok, buf = cv2.imencode('.png', img)
    assert ok
    return buf.tobytes()


def file_storage(data, filename='shapes.png', content_type='image/png'):
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)


class GatedBackend(OpenCVBackend):
    """Holds every decode on the worker thread until the test opens the gate."""

    def __init__(self):
        super().__init__()
        self.gate = threading.Event()

    def decode(self, data, name="upload"):
        if threading.current_thread().name == "contour-worker":
            self.gate.wait(5)
        return super().decode(data, name)


class FailingEdgesBackend(OpenCVBackend):
    def edges(self, img, low, high):
        raise cv2.error("simulated Canny fault")


@pytest.fixture
def shapes():
    return draw_shapes()


@pytest.fixture
def shapes_png(shapes):
    return encode_png(shapes)


@pytest.fixture
def large_png():
    return encode_png(draw_shapes(2000, 1000))


@pytest.fixture
def backend():
    return OpenCVBackend()


def _started(backend):
    session = DetectionSession(backend=backend)
    session.start()
    assert session.wait(5)
    return session


@pytest.fixture
def session(backend):
    s = _started(backend)
    yield s
    s.close()


@pytest.fixture
def gated_session():
    s = _started(GatedBackend())
    yield s
    s.backend.gate.set()
    s.close()


@pytest.fixture
def failing_session():
    s = _started(FailingEdgesBackend())
    yield s
    s.close()
