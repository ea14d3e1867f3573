"""
Ordered store of the loaded photographs

Images are immutable once loaded. The pipeline only reads pixels, size and
the identity fingerprint; index 0 is the baseline.
"""

import hashlib
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union, Iterator

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from scenecarve.core.errors import NativeComputationError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.tif', '.tiff', '.bmp', '.webp'}


def compute_identity(pixels: np.ndarray, encoded: Optional[bytes] = None) -> str:
    """
    Stable source fingerprint.

    Hashes the encoded file bytes when available, otherwise the pixel buffer
    together with its shape.
    """
    h = hashlib.sha256()
    if encoded is not None:
        h.update(encoded)
    else:
        h.update(str(pixels.shape).encode())
        h.update(np.ascontiguousarray(pixels).tobytes())
    return h.hexdigest()[:32]


def display_color(identity: str, index: int) -> Tuple[int, int, int]:
    """Stable BGR colour for an image, used to tint its paint strokes"""
    digest = hashlib.md5(f"{identity[:50]}{index}".encode()).digest()
    hue = digest[0] % 180
    hsv = np.uint8([[[hue, 200, 255]]])
    b, g, r = cv2.cvtColor(hsv, cv2.COLOR_HSV2BGR)[0, 0]
    return int(b), int(g), int(r)


class SourceImage:
    """A loaded photograph (BGR uint8, native resolution)"""

    def __init__(self, pixels: np.ndarray, name: str = "", identity: Optional[str] = None):
        if pixels is None or pixels.ndim not in (2, 3) or pixels.size == 0:
            raise ValueError(f"Invalid pixel buffer for image '{name}'")
        if pixels.ndim == 2:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)
        elif pixels.shape[2] == 4:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_BGRA2BGR)
        if pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels for image '{name}', got {pixels.dtype}")

        self._pixels = np.ascontiguousarray(pixels)
        self._pixels.setflags(write=False)
        self.name = name
        self.identity = identity or compute_identity(self._pixels)

    @property
    def pixels(self) -> np.ndarray:
        """Read-only BGR pixel buffer"""
        return self._pixels

    @property
    def width(self) -> int:
        return self._pixels.shape[1]

    @property
    def height(self) -> int:
        return self._pixels.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height) in native pixels"""
        return self.width, self.height

    def __repr__(self) -> str:
        return f"SourceImage(name={self.name!r}, size={self.width}x{self.height}, id={self.identity[:8]})"


def load_image_file(path: Union[str, Path]) -> SourceImage:
    """
    Decode an image file, honouring EXIF orientation.

    Raises:
        NativeComputationError: if the file cannot be decoded
    """
    path = Path(path)
    try:
        encoded = path.read_bytes()
        with Image.open(path) as pil_image:
            pil_image = ImageOps.exif_transpose(pil_image)
            rgb = np.array(pil_image.convert('RGB'))
    except (UnidentifiedImageError, OSError) as e:
        raise NativeComputationError("decode", f"{path.name}: {e}") from e

    pixels = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
    image = SourceImage(pixels, name=path.name, identity=compute_identity(pixels, encoded))
    logger.debug(f"Loaded {path.name}: {image.width}x{image.height}")
    return image


class ImageStore:
    """Ordered, append/remove collection of SourceImage; index 0 is the baseline"""

    def __init__(self, images: Optional[List[SourceImage]] = None):
        self._images: List[SourceImage] = list(images or [])

    def add_image(self, pixels: np.ndarray, name: str = "") -> SourceImage:
        """Add an in-memory BGR image"""
        image = SourceImage(pixels, name=name or f"image_{len(self._images)}")
        self._images.append(image)
        logger.info(f"Added image {image.name} ({image.width}x{image.height}), total {len(self._images)}")
        return image

    def add_image_file(self, path: Union[str, Path]) -> SourceImage:
        """Decode and add an image file"""
        image = load_image_file(path)
        self._images.append(image)
        logger.info(f"Added image {image.name} ({image.width}x{image.height}), total {len(self._images)}")
        return image

    def remove_image(self, index: int) -> SourceImage:
        """Remove an image; later images shift down one index"""
        image = self._images.pop(index)
        logger.info(f"Removed image {image.name}, total {len(self._images)}")
        return image

    def clear(self):
        self._images.clear()

    @property
    def baseline(self) -> Optional[SourceImage]:
        return self._images[0] if self._images else None

    def __len__(self) -> int:
        return len(self._images)

    def __getitem__(self, index: int) -> SourceImage:
        return self._images[index]

    def __iter__(self) -> Iterator[SourceImage]:
        return iter(self._images)
