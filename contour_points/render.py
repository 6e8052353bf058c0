import threading
import numpy as np
from typing import Any, Dict

from .utils import image_to_base64


class RenderTarget:
    """
    The display surface for annotated frames.

    A frame is encoded completely before it is swapped in under the lock, so
    a reader sees either the previous frame or the new one, never a mix.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.width = 0
        self.height = 0
        self._image_data = ""
        self._frame_id = 0

    def show(self, buffer: np.ndarray) -> None:
        """Resizes the surface to the buffer and copies its pixels in."""
        height, width = buffer.shape[:2]
        image_data = image_to_base64(buffer)
        with self._lock:
            self.width = width
            self.height = height
            self._image_data = image_data
            self._frame_id += 1

    def clear(self) -> None:
        with self._lock:
            self.width = 0
            self.height = 0
            self._image_data = ""
            self._frame_id += 1

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'width': self.width,
                'height': self.height,
                'image_data': self._image_data,
                'frame_id': self._frame_id,
            }
