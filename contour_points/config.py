import os

# --- Downscaler ---
MAX_DIMENSION = 1200

# --- Vision pipeline ---
GAUSSIAN_KERNEL = (5, 5)
GAUSSIAN_SIGMA = 0  # derived from the kernel size by OpenCV

OUTLINE_COLOR = (0, 255, 0)
OUTLINE_THICKNESS = 2

MARKER_COLOR = (0, 0, 255)
MARKER_RADIUS = 2
MAX_MARKERS_PER_CONTOUR = 3000

# --- Parameter state ---
DEFAULT_PARAMETERS = {
    'stride': 12,
    'low_threshold': 80,
    'high_threshold': 160,
}

PARAMETER_RANGES = {
    'stride': (1, 30),
    'low_threshold': (0, 300),
    'high_threshold': (0, 400),
}

# --- Status line ---
STATUS_MESSAGES = {
    'not_ready': "Loading OpenCV...",
    'ready': "OpenCV ready. Upload an image.",
    'image_loaded': "Image loaded. Click 'Detect Contours'.",
    'no_image': "Please upload an image first.",
    'processing': "Processing...",
    'done': "Done. Contours found: {count}",
    'error': "Processing error: {message}",
}

# --- Flask ---
MAX_UPLOAD_BYTES = 16 * 1024 * 1024

FLASK_CONFIG = {
    'host': os.environ.get('CONTOUR_POINTS_HOST', '0.0.0.0'),
    'port': int(os.environ.get('CONTOUR_POINTS_PORT', '5000')),
    'debug': os.environ.get('CONTOUR_POINTS_DEBUG', '').lower() in ('1', 'true', 'yes'),
}
