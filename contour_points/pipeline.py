import numpy as np
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Tuple

from .config import (
    GAUSSIAN_KERNEL, GAUSSIAN_SIGMA, MAX_DIMENSION,
    MARKER_COLOR, MARKER_RADIUS, MAX_MARKERS_PER_CONTOUR,
    OUTLINE_COLOR, OUTLINE_THICKNESS,
)
from .parameters import DetectionParameters
from .render import RenderTarget
from .resources import BufferScope, OpenCVBackend
from .utils import downscale

StageCallback = Optional[Callable[[str], None]]


class PipelineFailure(RuntimeError):
    """A stage of the detection pipeline raised; carries the stage name."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message


@contextmanager
def stage(name: str, on_stage: StageCallback = None) -> Iterator[None]:
    """Reports the stage and turns any fault inside it into a PipelineFailure."""
    if on_stage is not None:
        on_stage(name)
    try:
        yield
    except PipelineFailure:
        raise
    except Exception as e:
        raise PipelineFailure(name, str(e)) from e


def marker_indices(n_vertices: int, stride: int, cap: int = MAX_MARKERS_PER_CONTOUR) -> range:
    """Vertex indices that get a marker: every stride-th from 0, at most cap of them."""
    stride = max(1, int(stride))
    return range(0, min(n_vertices, stride * cap), stride)


# --- Contour detection and annotation ---

def _annotate(backend: OpenCVBackend, annotated: np.ndarray, contours, stride: int) -> None:
    """Outline each contour in extraction order, then mark its sampled vertices."""
    for i, contour in enumerate(contours):
        backend.draw_outline(annotated, contours, i, OUTLINE_COLOR, OUTLINE_THICKNESS)
        for j in marker_indices(len(contour), stride):
            x, y = contour[j][0]
            backend.draw_marker(annotated, (x, y), MARKER_RADIUS, MARKER_COLOR)


def detect_contours(image: np.ndarray, params: DetectionParameters, backend: OpenCVBackend,
                    on_stage: StageCallback = None) -> Tuple[np.ndarray, int]:
    """
    Runs clone -> grayscale -> 5x5 Gaussian -> Canny -> external contours and
    draws every contour (outline plus sampled vertex markers) onto a copy of
    the input.

    Returns the annotated copy, owned by the caller, and the contour count.
    Intermediates are released as soon as the next stage has consumed them.
    """
    with BufferScope(backend) as scope:
        with stage('clone', on_stage):
            annotated = scope.own(backend.clone(image))

        with stage('grayscale', on_stage):
            gray = scope.own(backend.to_grayscale(image))

        with stage('blur', on_stage):
            blurred = scope.own(backend.gaussian_blur(gray, GAUSSIAN_KERNEL, GAUSSIAN_SIGMA))
            scope.release(gray)
            del gray

        with stage('edges', on_stage):
            edges = scope.own(backend.edges(blurred, params.low_threshold, params.high_threshold))
            scope.release(blurred)
            del blurred

        with stage('contours', on_stage):
            contours, hierarchy = backend.find_external_contours(edges)
            scope.own(contours)
            scope.own(hierarchy)
            scope.release(edges)
            del edges

        with stage('annotate', on_stage):
            _annotate(backend, annotated, contours, params.stride)

        count = len(contours)
        scope.release(contours)
        scope.release(hierarchy)
        del contours, hierarchy
        return scope.detach(annotated), count


def run_detection(image_bytes: bytes, params: DetectionParameters, target: RenderTarget,
                  backend: OpenCVBackend, max_dim: int = MAX_DIMENSION,
                  on_stage: StageCallback = None) -> int:
    """
    One full run for an uploaded file: decode, downscale, detect, render.

    Every buffer allocated here is released before returning or raising.
    """
    with BufferScope(backend) as scope:
        with stage('decode', on_stage):
            src = scope.own(backend.decode(image_bytes))

        with stage('downscale', on_stage):
            src = downscale(scope, src, max_dim)

        annotated, count = detect_contours(src, params, backend, on_stage)
        scope.own(annotated)
        scope.release(src)
        del src

        with stage('render', on_stage):
            target.show(annotated)
        return count
