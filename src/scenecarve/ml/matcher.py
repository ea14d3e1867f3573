"""
Descriptor matching with Lowe's ratio test and RANSAC homography estimation
"""

import cv2
import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging

from scenecarve.core.errors import AlignmentFailure, native_errors
from scenecarve.ml.feature_detector import FeatureSet

logger = logging.getLogger(__name__)

MIN_HOMOGRAPHY_POINTS = 4


@dataclass
class AlignmentResult:
    """Outcome of a successful alignment of one image onto the baseline"""
    homography: np.ndarray          # 3x3, target frame -> baseline frame, row-major
    matches: List[cv2.DMatch]       # ratio-test survivors (query = baseline, train = target)
    inlier_mask: np.ndarray         # RANSAC inlier flags, one per match

    @property
    def num_matches(self) -> int:
        return len(self.matches)

    @property
    def num_inliers(self) -> int:
        return int(np.count_nonzero(self.inlier_mask))


def ratio_test(knn_matches: Sequence[Sequence[cv2.DMatch]], ratio: float) -> List[cv2.DMatch]:
    """
    Keep the best candidate of each k=2 match when it is clearly better than the runner-up.

    A pair survives only if best.distance <= ratio * second.distance. Queries
    with fewer than two candidates are dropped because they cannot be judged.
    """
    good_matches = []
    for match_pair in knn_matches:
        if len(match_pair) < 2:
            continue
        best, second = match_pair[0], match_pair[1]
        if best.distance <= ratio * second.distance:
            good_matches.append(best)
    return good_matches


class DescriptorMatcher:
    """Brute-force k-NN matcher for binary or float descriptors"""

    def __init__(self, ratio_threshold: float = 0.7):
        self.ratio_threshold = ratio_threshold

    def _create_matcher(self, descriptors: np.ndarray):
        norm = cv2.NORM_HAMMING if descriptors.dtype == np.uint8 else cv2.NORM_L2
        return cv2.BFMatcher(norm, crossCheck=False)

    def match(
        self,
        baseline: FeatureSet,
        target: FeatureSet,
        image_index: Optional[int] = None
    ) -> List[cv2.DMatch]:
        """
        Match every baseline descriptor against the target's and apply the ratio test.

        Returns:
            Surviving matches, queryIdx into baseline, trainIdx into target
        """
        if len(baseline) == 0 or len(target) == 0:
            logger.debug(f"Image {image_index}: nothing to match "
                         f"(baseline {len(baseline)}, target {len(target)} features)")
            return []
        if baseline.descriptors.shape[1] != target.descriptors.shape[1]:
            logger.warning(f"Descriptor dimension mismatch: "
                           f"{baseline.descriptors.shape[1]} vs {target.descriptors.shape[1]}")
            return []

        with native_errors("descriptor matching", image_index=image_index):
            matcher = self._create_matcher(baseline.descriptors)
            knn = matcher.knnMatch(baseline.descriptors, target.descriptors, k=2)

        good_matches = ratio_test(knn, self.ratio_threshold)
        logger.debug(f"Image {image_index}: {len(good_matches)}/{len(knn)} matches passed ratio test "
                     f"({self.ratio_threshold})")
        return good_matches


def matched_points(
    matches: Sequence[cv2.DMatch],
    baseline: FeatureSet,
    target: FeatureSet
) -> Tuple[np.ndarray, np.ndarray]:
    """Equal-length Nx2 point sets (baseline, target) for the given matches"""
    if not matches:
        empty = np.empty((0, 2), dtype=np.float32)
        return empty, empty.copy()
    query = np.fromiter((m.queryIdx for m in matches), dtype=np.int64, count=len(matches))
    train = np.fromiter((m.trainIdx for m in matches), dtype=np.int64, count=len(matches))
    return baseline.points[query], target.points[train]


def estimate_homography(
    target_points: np.ndarray,
    baseline_points: np.ndarray,
    reproj_threshold: float = 3.0,
    image_index: Optional[int] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    RANSAC homography mapping target points onto baseline points.

    Returns:
        (3x3 float64 homography, inlier mask)

    Raises:
        AlignmentFailure: fewer than 4 correspondences, empty estimate or NaN entries
    """
    n = len(target_points)
    if n != len(baseline_points):
        raise ValueError(f"Point set length mismatch: {n} != {len(baseline_points)}")
    if n < MIN_HOMOGRAPHY_POINTS:
        raise AlignmentFailure(f"only {n} correspondences", image_index=image_index, num_matches=n)

    try:
        homography, mask = cv2.findHomography(
            np.float32(target_points).reshape(-1, 1, 2),
            np.float32(baseline_points).reshape(-1, 1, 2),
            cv2.RANSAC,
            reproj_threshold
        )
    except cv2.error as e:
        raise AlignmentFailure(f"homography estimation failed ({e})",
                               image_index=image_index, num_matches=n) from e

    if homography is None or homography.size == 0:
        raise AlignmentFailure("empty homography", image_index=image_index, num_matches=n)
    if np.isnan(homography).any():
        raise AlignmentFailure("homography contains NaN", image_index=image_index, num_matches=n)

    inliers = mask.ravel().astype(bool) if mask is not None else np.ones(n, dtype=bool)
    return homography.astype(np.float64), inliers


def align_feature_sets(
    baseline: FeatureSet,
    target: FeatureSet,
    ratio_threshold: float = 0.7,
    reproj_threshold: float = 3.0,
    image_index: Optional[int] = None
) -> AlignmentResult:
    """
    Estimate the projection of a target image onto the baseline.

    Raises:
        AlignmentFailure: when no valid homography can be estimated
        NativeComputationError: when matching itself fails inside OpenCV
    """
    matcher = DescriptorMatcher(ratio_threshold=ratio_threshold)
    good_matches = matcher.match(baseline, target, image_index=image_index)
    baseline_pts, target_pts = matched_points(good_matches, baseline, target)
    homography, inliers = estimate_homography(
        target_pts, baseline_pts, reproj_threshold=reproj_threshold, image_index=image_index
    )
    logger.info(f"Image {image_index}: homography from {len(good_matches)} matches "
                f"({int(inliers.sum())} inliers)")
    return AlignmentResult(homography=homography, matches=good_matches, inlier_mask=inliers)
