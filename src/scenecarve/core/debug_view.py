"""
Debug visualisation of detected keypoints and ratio-test matches
"""

import cv2
import numpy as np
from pathlib import Path
from typing import List, Optional
import logging

from scenecarve.ml.feature_detector import (
    FeatureSet, make_detection_frame, KP_X, KP_Y, KP_OCTAVE, array_to_keypoints
)

logger = logging.getLogger(__name__)


def draw_keypoints(frame: np.ndarray, features: FeatureSet, color=(0, 255, 0)) -> np.ndarray:
    """
    Draw keypoints on a grayscale detection frame.

    Circle radius grows with the keypoint octave so coarse-scale features
    stand out from fine ones.
    """
    vis = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR) if frame.ndim == 2 else frame.copy()
    for row in features.keypoints:
        center = (int(round(row[KP_X])), int(round(row[KP_Y])))
        radius = 2 + 2 * max(0, int(row[KP_OCTAVE]))
        cv2.circle(vis, center, radius, color, 1, cv2.LINE_AA)
    return vis


def draw_matches(
    baseline_frame: np.ndarray,
    baseline: FeatureSet,
    target_frame: np.ndarray,
    target: FeatureSet,
    matches: List[cv2.DMatch],
    inlier_mask: Optional[np.ndarray] = None
) -> np.ndarray:
    """Side-by-side view of matches (query = baseline, train = target)"""
    mask = None
    if inlier_mask is not None:
        mask = [int(v) for v in inlier_mask]
    return cv2.drawMatches(
        baseline_frame, array_to_keypoints(baseline.keypoints),
        target_frame, array_to_keypoints(target.keypoints),
        matches, None,
        matchColor=(0, 255, 0),
        singlePointColor=(255, 0, 0),
        matchesMask=mask,
        flags=cv2.DrawMatchesFlags_NOT_DRAW_SINGLE_POINTS
    )


def write_debug_images(pipeline, output_dir: Path) -> List[Path]:
    """
    Write keypoint and match visualisations for every image of a pipeline.

    Returns:
        Paths of the written PNG files
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    config = pipeline.config
    written = []

    frames = []
    for index, image in enumerate(pipeline.store):
        frame = make_detection_frame(image, config.width_limit)
        frames.append(frame)
        rec = pipeline.record(index)
        if rec.features is None:
            continue
        path = output_dir / f"keypoints_{index:02d}.png"
        cv2.imwrite(str(path), draw_keypoints(frame, rec.features))
        written.append(path)

    base_rec = pipeline.record(0) if len(pipeline.store) else None
    for index in range(1, len(pipeline.store)):
        rec = pipeline.record(index)
        if rec.alignment is None or base_rec.features is None or rec.features is None:
            continue
        vis = draw_matches(frames[0], base_rec.features, frames[index], rec.features,
                           rec.alignment.matches, rec.alignment.inlier_mask)
        path = output_dir / f"matches_00_{index:02d}.png"
        cv2.imwrite(str(path), vis)
        written.append(path)

    logger.info(f"Wrote {len(written)} debug images to {output_dir}")
    return written
