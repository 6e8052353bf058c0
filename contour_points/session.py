import queue
import threading
import traceback
from enum import Enum
from functools import partial
from typing import Any, Dict, Optional
from werkzeug.datastructures import FileStorage

from .config import MAX_DIMENSION, STATUS_MESSAGES
from .loader import ImageLoader, LoadedImage
from .parameters import DetectionParameters
from .pipeline import PipelineFailure, run_detection
from .render import RenderTarget
from .resources import OpenCVBackend


class State(str, Enum):
    IDLE = 'idle'
    LOADING = 'loading'
    READY = 'ready'
    PROCESSING = 'processing'


class SessionBusy(RuntimeError):
    """An upload arrived while another upload or a detection run was in flight."""


class DetectionSession:
    """
    Upload -> detect workflow for the single-page demo.

    Detection runs on one background worker thread. The worker never touches
    session state directly: it posts ('ready' | 'progress' | 'done' | 'error')
    events on a queue and poll() applies them, so the status line can show
    "Processing..." before the blocking OpenCV work starts.
    """

    def __init__(self, backend: Optional[OpenCVBackend] = None, max_dim: int = MAX_DIMENSION):
        self.backend = backend or OpenCVBackend()
        self.loader = ImageLoader(self.backend)
        self.target = RenderTarget()
        self.max_dim = max_dim

        self.state = State.IDLE
        self.ready = False
        self.status_message = STATUS_MESSAGES['not_ready']
        self.parameters = DetectionParameters()
        self.stage: Optional[str] = None
        self.contour_count: Optional[int] = None
        self.opencv_version: Optional[str] = None

        self._lock = threading.RLock()
        self._jobs: "queue.Queue[Any]" = queue.Queue()
        self._events: "queue.Queue[tuple]" = queue.Queue()
        self._idle = threading.Event()
        self._idle.set()
        self._worker: Optional[threading.Thread] = None

    # --------------------------
    # WORKER
    # --------------------------
    def start(self) -> None:
        """Starts the worker and initialises OpenCV on it."""
        with self._lock:
            if self._worker is not None:
                return
            self._worker = threading.Thread(target=self._run_worker, name="contour-worker", daemon=True)
            self._worker.start()
            self._submit(self._initialize)

    def _submit(self, job) -> None:
        with self._lock:
            self._idle.clear()
            self._jobs.put(job)

    def _run_worker(self) -> None:
        while True:
            job = self._jobs.get()
            if job is None:
                with self._lock:
                    self._idle.set()
                break
            try:
                job()
            except Exception as e:
                print(f"[session] Worker error: {e}", flush=True)
                traceback.print_exc()
                self._events.put(('error', str(e)))
            finally:
                with self._lock:
                    if self._jobs.empty():
                        self._idle.set()

    def _initialize(self) -> None:
        version = self.backend.initialize()
        self._events.put(('ready', version))

    def _detect(self, data: bytes, params: DetectionParameters) -> None:
        try:
            count = run_detection(data, params, self.target, self.backend, self.max_dim,
                                  on_stage=lambda name: self._events.put(('progress', name)))
        except PipelineFailure as e:
            print(f"[session] Processing error: {e}", flush=True)
            traceback.print_exc()
            self._events.put(('error', str(e)))
        else:
            self._events.put(('done', count))

    # --------------------------
    # EVENTS
    # --------------------------
    def poll(self) -> None:
        """Applies every event the worker has posted since the last poll."""
        with self._lock:
            while True:
                try:
                    kind, payload = self._events.get_nowait()
                except queue.Empty:
                    break
                self._apply(kind, payload)

    def _apply(self, kind: str, payload: Any) -> None:
        if kind == 'ready':
            self.ready = True
            self.opencv_version = payload
            if self.status_message == STATUS_MESSAGES['not_ready']:
                self.status_message = STATUS_MESSAGES['ready']
        elif kind == 'progress':
            self.stage = payload
        elif kind == 'done':
            self.contour_count = payload
            self.stage = None
            self.state = State.READY
            self.status_message = STATUS_MESSAGES['done'].format(count=payload)
        elif kind == 'error':
            self.stage = None
            self.state = State.READY if self.loader.current is not None else State.IDLE
            self.status_message = STATUS_MESSAGES['error'].format(message=payload)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Blocks until queued work is finished, then applies its events."""
        finished = self._idle.wait(timeout)
        self.poll()
        return finished

    # --------------------------
    # USER ACTIONS
    # --------------------------
    def upload(self, file: Optional[FileStorage]) -> Optional[LoadedImage]:
        """
        Loads a new image. Returns None (and changes nothing) before OpenCV
        is ready or when no file was selected.
        """
        with self._lock:
            self.poll()
            if not self.ready or file is None or not file.filename:
                return None
            if self.state == State.LOADING:
                raise SessionBusy("Another upload is still loading, try again when it finishes.")
            if self.state == State.PROCESSING:
                raise SessionBusy("Detection in progress, try again when it finishes.")
            previous = self.state
            self.state = State.LOADING

        try:
            loaded = self.loader.load(file)
        except Exception:
            with self._lock:
                self.state = previous
            raise

        with self._lock:
            self.state = State.READY
            self.contour_count = None
            self.status_message = STATUS_MESSAGES['image_loaded']
        return loaded

    def trigger(self, params: DetectionParameters) -> bool:
        """
        Queues a detection run with the given parameters.

        Only valid from READY: returns False when OpenCV is not ready, when
        no image has been uploaded (status says so) or while busy.
        """
        with self._lock:
            self.poll()
            if not self.ready:
                return False
            if self.loader.current is None:
                self.status_message = STATUS_MESSAGES['no_image']
                return False
            if self.state != State.READY:
                return False

            self.parameters = params
            self.state = State.PROCESSING
            self.stage = None
            self.status_message = STATUS_MESSAGES['processing']
            self._submit(partial(self._detect, self.loader.current.data, params))
            return True

    def status(self) -> Dict[str, Any]:
        with self._lock:
            self.poll()
            return {
                'state': self.state.value,
                'ready': self.ready,
                'status': self.status_message,
                'stage': self.stage,
                'contour_count': self.contour_count,
                'parameters': self.parameters.as_dict(),
                'image_loaded': self.loader.current is not None,
            }

    def close(self, timeout: float = 5.0) -> None:
        """Stops the worker and releases the uploaded image and the last frame."""
        with self._lock:
            worker, self._worker = self._worker, None
        if worker is not None:
            self._jobs.put(None)
            worker.join(timeout)
        with self._lock:
            while True:
                try:
                    self._events.get_nowait()
                except queue.Empty:
                    break
            self.loader.release()
            self.target.clear()
            self.ready = False
            self.state = State.IDLE
            self.contour_count = None
            self.status_message = STATUS_MESSAGES['not_ready']
