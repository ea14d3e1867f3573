"""Pytest configuration and shared fixtures for the SceneCarve test suite.

Scenes are synthetic: random filled rectangles and circles drawn with
OpenCV give AKAZE/ORB plenty of corners while staying deterministic.
"""
import sys
import logging
from pathlib import Path

import cv2
import numpy as np
import pytest

# Add src to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from scenecarve.core.config import PipelineConfig
from scenecarve.core.image_store import ImageStore
from scenecarve.core.pipeline import OverlayPipeline


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logging.getLogger('PIL').setLevel(logging.WARNING)


def make_scene(width: int = 800, height: int = 600, seed: int = 7) -> np.ndarray:
    """Textured BGR scene with many strong corners"""
    rng = np.random.default_rng(seed)
    img = np.full((height, width, 3), 128, dtype=np.uint8)
    for _ in range(140):
        x, y = (int(v) for v in rng.integers(0, [width, height]))
        w, h = (int(v) for v in rng.integers(15, 110, size=2))
        color = tuple(int(c) for c in rng.integers(0, 256, size=3))
        cv2.rectangle(img, (x, y), (x + w, y + h), color, -1)
    for _ in range(60):
        x, y = (int(v) for v in rng.integers(0, [width, height]))
        r = int(rng.integers(6, 40))
        color = tuple(int(c) for c in rng.integers(0, 256, size=3))
        cv2.circle(img, (x, y), r, color, -1)
    return img


def translate(image: np.ndarray, tx: float, ty: float) -> np.ndarray:
    """Shift content by (tx, ty): a point p of the input lands at p + (tx, ty)"""
    h, w = image.shape[:2]
    matrix = np.float32([[1, 0, tx], [0, 1, ty]])
    return cv2.warpAffine(image, matrix, (w, h), borderMode=cv2.BORDER_REFLECT)


def two_tone(width: int = 200, height: int = 120) -> np.ndarray:
    """Dark blue left half, bright yellow right half"""
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:, : width // 2] = (120, 30, 20)
    img[:, width // 2:] = (40, 230, 240)
    return img


@pytest.fixture(scope="session")
def scene():
    return make_scene()


@pytest.fixture(scope="session")
def shifted_scene(scene):
    return translate(scene, 15, 10)


@pytest.fixture
def blank_image():
    return np.full((600, 800, 3), 128, dtype=np.uint8)


@pytest.fixture
def config():
    return PipelineConfig().validate()


@pytest.fixture
def aligned_store(scene, shifted_scene):
    store = ImageStore()
    store.add_image(scene, "baseline")
    store.add_image(shifted_scene, "shifted")
    return store


@pytest.fixture
def warnings_seen():
    return []


@pytest.fixture
def pipeline(aligned_store, warnings_seen):
    return OverlayPipeline(aligned_store, warning_callback=warnings_seen.append)
