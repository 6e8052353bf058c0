import cv2
import numpy as np
from typing import Any, List, Sequence, Tuple


# --------------------------
# VISION CAPABILITY
# --------------------------
class OpenCVBackend:
    """
    The vision capability the pipeline consumes: decode, colour conversion,
    blur, Canny edges, external contours, drawing and area resize.

    Every call that hands back a new buffer counts as one allocation and
    every buffer must come back through release(), so a run can be checked
    for balance (allocations == releases).
    """

    def __init__(self):
        self.allocations = 0
        self.releases = 0
        self.ready = False

    def initialize(self) -> str:
        """Marks the capability usable and returns the OpenCV version."""
        version = cv2.__version__
        self.ready = True
        return version

    def _allocated(self, buf):
        self.allocations += 1
        return buf

    def decode(self, data: bytes, name: str = "upload") -> np.ndarray:
        if not data:
            raise ValueError(f"Failed to decode image: {name} is empty")
        npimg = np.frombuffer(data, np.uint8)
        img = cv2.imdecode(npimg, cv2.IMREAD_COLOR)
        if img is None:
            raise ValueError(f"Failed to decode image: {name}")
        return self._allocated(img)

    def clone(self, img: np.ndarray) -> np.ndarray:
        return self._allocated(img.copy())

    def to_grayscale(self, img: np.ndarray) -> np.ndarray:
        return self._allocated(cv2.cvtColor(img, cv2.COLOR_BGR2GRAY))

    def gaussian_blur(self, img: np.ndarray, ksize: Tuple[int, int], sigma: float) -> np.ndarray:
        return self._allocated(cv2.GaussianBlur(img, ksize, sigma))

    def edges(self, img: np.ndarray, low: float, high: float) -> np.ndarray:
        return self._allocated(cv2.Canny(img, low, high))

    def find_external_contours(self, edges: np.ndarray) -> Tuple[List[np.ndarray], np.ndarray]:
        """Outer boundaries only, stored as direction-change vertices."""
        contours, hierarchy = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        if hierarchy is None:
            hierarchy = np.empty((1, 0, 4), dtype=np.int32)
        return self._allocated(list(contours)), self._allocated(hierarchy)

    def resize_area(self, img: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
        return self._allocated(cv2.resize(img, size, interpolation=cv2.INTER_AREA))

    def draw_outline(self, dst: np.ndarray, contours: Sequence[np.ndarray], index: int,
                     color: Tuple[int, int, int], thickness: int) -> None:
        cv2.drawContours(dst, contours, index, color, thickness)

    def draw_marker(self, dst: np.ndarray, point: Tuple[int, int], radius: int,
                    color: Tuple[int, int, int]) -> None:
        cv2.circle(dst, (int(point[0]), int(point[1])), radius, color, -1)

    def release(self, buf: Any) -> None:
        self.releases += 1


# --------------------------
# SCOPED OWNERSHIP
# --------------------------
class BufferScope:
    """
    Owns the buffers of one pipeline run. Whatever is still owned when the
    block exits is released in reverse order, whether it exits normally or
    through an exception.
    """

    def __init__(self, backend: OpenCVBackend):
        self.backend = backend
        self._owned: List[Any] = []

    def __enter__(self) -> "BufferScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release_all()

    def _index(self, buf: Any) -> int:
        # Identity, not equality: numpy compares element-wise.
        for i, owned in enumerate(self._owned):
            if owned is buf:
                return i
        return -1

    def own(self, buf: Any) -> Any:
        if self._index(buf) < 0:
            self._owned.append(buf)
        return buf

    def owns(self, buf: Any) -> bool:
        return self._index(buf) >= 0

    def release(self, buf: Any) -> None:
        i = self._index(buf)
        if i < 0:
            raise ValueError("Buffer is not owned by this scope (already released?).")
        del self._owned[i]
        self.backend.release(buf)

    def detach(self, buf: Any) -> Any:
        """Hands ownership to the caller without releasing."""
        i = self._index(buf)
        if i < 0:
            raise ValueError("Buffer is not owned by this scope.")
        del self._owned[i]
        return buf

    def release_all(self) -> None:
        while self._owned:
            self.backend.release(self._owned.pop())

    def __len__(self) -> int:
        return len(self._owned)
