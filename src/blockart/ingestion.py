"""
Image and Video Ingestion Module

This module handles:
- Loading still images as RGB rasters (alpha is discarded)
- Reading video frames in order, capped at a maximum frame count
- Non-upscaling, aspect-preserving size limits
- Mirroring rasters into the target's coordinate handedness
"""

import logging
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union
import numpy as np
from PIL import Image, UnidentifiedImageError
import cv2

from .errors import UnreadableSource

logger = logging.getLogger(__name__)


def _bounded(limit: Optional[int]) -> bool:
    return limit is not None and limit > 0


def fit_size(
    width: int,
    height: int,
    max_width: Optional[int],
    max_height: Optional[int]
) -> Tuple[int, int]:
    """
    Compute the size an image should be shrunk to.

    Images are never enlarged and always keep their aspect ratio.
    A bound of None (or <= 0) leaves that axis unconstrained.

    Args:
        width, height: Current size
        max_width, max_height: Size limits

    Returns:
        (new_width, new_height)
    """
    bound_w = _bounded(max_width)
    bound_h = _bounded(max_height)

    if not bound_w and not bound_h:
        return width, height

    if bound_h and not bound_w:
        if height <= max_height:
            return width, height
        ratio = max_height / height
    elif bound_w and not bound_h:
        if width <= max_width:
            return width, height
        ratio = max_width / width
    else:
        if width <= max_width and height <= max_height:
            return width, height
        ratio = min(max_width / width, max_height / height)

    return max(1, int(width * ratio)), max(1, int(height * ratio))


def limit_scale(
    raster: np.ndarray,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None
) -> np.ndarray:
    """
    Shrink an RGB raster to fit within the given bounds.

    Uses area averaging (BOX) so that downscaled pixels carry the
    average color of the pixels they cover.

    Args:
        raster: RGB array of shape (H, W, 3)
        max_width, max_height: Size limits (None = unbounded)

    Returns:
        The same array if no resize is needed, otherwise a new array
    """
    h, w = raster.shape[:2]
    new_w, new_h = fit_size(w, h, max_width, max_height)
    if (new_w, new_h) == (w, h):
        return raster

    img = Image.fromarray(np.ascontiguousarray(raster))
    img = img.resize((new_w, new_h), Image.Resampling.BOX)
    return np.array(img, dtype=np.uint8)


def mirror(raster: np.ndarray) -> np.ndarray:
    """
    Flip a raster horizontally.

    Image columns run left-to-right when viewed from the front, while
    the world axis they are written along runs the other way when the
    build is viewed from its placement point.
    """
    return raster[:, ::-1]


class ImageLoader:
    """
    Still image loader producing RGB rasters.

    Key features:
    - Any format Pillow can decode
    - Alpha and palette modes are flattened to RGB
    """

    def __init__(self):
        self._raster: Optional[np.ndarray] = None
        self._path: Optional[Path] = None

    def load(self, image_path: Union[str, Path]) -> "ImageLoader":
        """
        Load an image from disk.

        Args:
            image_path: Path to the image

        Returns:
            self for method chaining

        Raises:
            UnreadableSource: If the file is missing or cannot be decoded
        """
        image_path = Path(image_path)
        if not image_path.exists():
            raise UnreadableSource(image_path, "file not found")

        try:
            with Image.open(image_path) as img:
                img = img.convert("RGB")
                raster = np.array(img, dtype=np.uint8)
        except (UnidentifiedImageError, OSError) as e:
            raise UnreadableSource(image_path, str(e)) from e

        if raster.size == 0:
            raise UnreadableSource(image_path, "image is empty")

        self._raster = raster
        self._path = image_path
        logger.debug("Loaded %s (%dx%d)", image_path, raster.shape[1], raster.shape[0])
        return self

    def load_from_array(self, array: np.ndarray) -> "ImageLoader":
        """
        Load from a numpy array instead of a file.

        Args:
            array: Array of shape (H, W, 3) or (H, W, 4); alpha is dropped

        Returns:
            self for method chaining
        """
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise ValueError("Image array must have shape (H, W, 3) or (H, W, 4)")

        self._raster = np.ascontiguousarray(array[:, :, :3], dtype=np.uint8)
        self._path = None
        return self

    @property
    def raster(self) -> np.ndarray:
        """Get the RGB raster."""
        if self._raster is None:
            raise RuntimeError("No image loaded")
        return self._raster

    @property
    def path(self) -> Optional[Path]:
        """Source file, if loaded from disk."""
        return self._path

    @property
    def size(self) -> Tuple[int, int]:
        """Get image size as (width, height)."""
        return (self.raster.shape[1], self.raster.shape[0])


class VideoLoader:
    """
    Sequential video frame reader.

    Frames come out as RGB rasters in stream order. OpenCV decodes to
    BGR, so channels are reversed on the way out.
    """

    def __init__(self, video_path: Union[str, Path]):
        """
        Open a video.

        Args:
            video_path: Path to the video file

        Raises:
            UnreadableSource: If the file is missing or cannot be opened
        """
        self.path = Path(video_path)
        if not self.path.exists():
            raise UnreadableSource(self.path, "file not found")

        self._capture = cv2.VideoCapture(str(self.path))
        if not self._capture.isOpened():
            self._capture.release()
            raise UnreadableSource(self.path, "cannot open video stream")

        self.frame_count = max(0, int(self._capture.get(cv2.CAP_PROP_FRAME_COUNT)))
        if self.frame_count == 0:
            self._capture.release()
            raise UnreadableSource(self.path, "video has no frames")

    def frames(self, max_frames: Optional[int] = None) -> Iterator[np.ndarray]:
        """
        Yield RGB frames in order.

        Reading stops at whichever comes first: the end of the stream,
        the reported frame count, or ``max_frames``.

        Args:
            max_frames: Frame cap (None = no cap)
        """
        limit = self.frame_count
        if max_frames is not None:
            limit = min(limit, max_frames)

        read = 0
        while read < limit:
            ok, frame = self._capture.read()
            if not ok:
                break
            read += 1
            yield cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

        logger.debug("Read %d/%d frames from %s", read, self.frame_count, self.path)

    def frame_limit(self, max_frames: Optional[int] = None) -> int:
        """Number of frames ``frames(max_frames)`` will try to read."""
        if max_frames is None:
            return self.frame_count
        return min(self.frame_count, max_frames)

    def close(self):
        """Release the underlying capture."""
        self._capture.release()

    def __enter__(self) -> "VideoLoader":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
