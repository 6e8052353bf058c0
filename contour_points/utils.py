import cv2
import numpy as np
import base64
from .config import MAX_DIMENSION
from .resources import BufferScope

# --- Helper Functions shared by the pipeline and render target ---

def image_to_base64(img: np.ndarray) -> str:
    """Encodes a BGR frame to a Base64 PNG string."""
    ok, buffer = cv2.imencode('.png', img)
    if not ok:
        raise ValueError("Failed to encode frame as PNG.")
    return base64.b64encode(buffer).decode('utf-8')

def scaled_size(width: int, height: int, max_dim: int = MAX_DIMENSION):
    """Target (width, height) for a bounded largest side, or None if it already fits."""
    max_side = max(width, height)
    if max_side <= max_dim:
        return None

    scale = max_dim / float(max_side)
    new_w = max(1, int(round(width * scale)))
    new_h = max(1, int(round(height * scale)))
    return new_w, new_h

def downscale(scope: BufferScope, img: np.ndarray, max_dim: int = MAX_DIMENSION) -> np.ndarray:
    """
    Shrinks an image so its largest side is max_dim, keeping the aspect ratio.
    Images that already fit come back as the same object with no resize call;
    otherwise the original buffer is released through the scope.
    """
    h, w = img.shape[:2]
    size = scaled_size(w, h, max_dim)
    if size is None:
        return img

    resized = scope.own(scope.backend.resize_area(img, size))
    scope.release(img)
    return resized
