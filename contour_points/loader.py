from dataclasses import dataclass
from typing import Optional
from werkzeug.datastructures import FileStorage

from .resources import BufferScope, OpenCVBackend


@dataclass
class LoadedImage:
    """The uploaded file held between upload and detection."""
    name: str
    data: bytes
    width: int
    height: int


class ImageLoader:
    """
    Holds at most one uploaded image. A new upload releases the previous
    handle before taking its place; release() drops it on teardown.
    """

    def __init__(self, backend: OpenCVBackend):
        self.backend = backend
        self.current: Optional[LoadedImage] = None

    def load(self, file: Optional[FileStorage]) -> Optional[LoadedImage]:
        """
        Reads and checks an uploaded file.

        Returns None when nothing was selected. Raises ValueError for
        non-image uploads or bytes that do not decode; the previous image is
        kept in that case.
        """
        if file is None or not file.filename:
            return None

        mimetype = file.mimetype or ''
        if not mimetype.startswith('image/'):
            raise ValueError(f"Unsupported file type: {mimetype or 'unknown'}")

        data = file.read()
        with BufferScope(self.backend) as scope:
            img = scope.own(self.backend.decode(data, file.filename))
            height, width = img.shape[:2]
            scope.release(img)
            del img

        self.release()
        self.current = LoadedImage(name=file.filename, data=data, width=width, height=height)
        return self.current

    def release(self) -> None:
        self.current = None
