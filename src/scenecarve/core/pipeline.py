"""
Alignment and compositing orchestration

Per image, three independent cache keys (features, alignment, composite)
decide which stages must rerun on an update pass. Keys are only written
after the stage completes, so a failed native stage is retried on the next
pass while a failed alignment (same inputs, same outcome) is not.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
import logging

import numpy as np

from scenecarve.core.cache_keys import features_key, alignment_key, composite_key
from scenecarve.core.config import PipelineConfig
from scenecarve.core.errors import AlignmentFailure, BaselineMaskError, NativeComputationError
from scenecarve.core.image_store import ImageStore, display_color
from scenecarve.core.paint_mask import PaintMask, MaskChannel, paint_stroke
from scenecarve.core.projection import Projection, Size
from scenecarve.core.segmentation import composite
from scenecarve.ml.feature_detector import FeatureSet, extract_features, detection_size
from scenecarve.ml.matcher import AlignmentResult, align_feature_sets
from scenecarve.utils.memory_manager import MemoryManager

logger = logging.getLogger(__name__)


@dataclass
class ImageRecord:
    """Pipeline state of one image; absent results are explicit None"""
    identity: str
    features: Optional[FeatureSet] = None
    features_key: Optional[str] = None
    alignment: Optional[AlignmentResult] = None
    alignment_key: Optional[str] = None
    paint_mask: Optional[PaintMask] = None
    composite: Optional[np.ndarray] = None
    composite_key: Optional[str] = None

    def release(self):
        if self.features is not None:
            self.features.release()
        self.features = None
        self.alignment = None
        self.composite = None


@dataclass
class UpdateReport:
    """Which stages ran for which image indices during one pass"""
    extracted: List[int] = field(default_factory=list)
    aligned: List[int] = field(default_factory=list)
    composited: List[int] = field(default_factory=list)
    failures: List[AlignmentFailure] = field(default_factory=list)

    @property
    def recomputed(self) -> bool:
        return bool(self.extracted or self.aligned or self.composited)


class OverlayPipeline:
    """Aligns every image onto the baseline and carves composites from paint hints"""

    def __init__(
        self,
        store: Optional[ImageStore] = None,
        warning_callback: Optional[Callable[[str], None]] = None,
        progress_callback: Optional[Callable[[int, str], None]] = None,
        memory_limit_gb: float = 4.0
    ):
        """
        Initialize the pipeline

        Args:
            store: Image store to read from (index 0 is the baseline)
            warning_callback: Receives user-facing warnings such as alignment failures
            progress_callback: Receives (percentage, message) during an update pass
            memory_limit_gb: Soft memory limit for stage tracking
        """
        self.store = store if store is not None else ImageStore()
        self.warning_callback = warning_callback
        self.progress_callback = progress_callback
        self.memory_manager = MemoryManager(memory_limit_gb=memory_limit_gb)
        self.config = PipelineConfig().validate()
        self._records: Dict[int, ImageRecord] = {}
        logger.info("Overlay pipeline initialized")

    # ------------------------------------------------------------------ state

    def _sync_records(self):
        """Re-key records by current index, keeping those whose image is still loaded"""
        by_identity: Dict[str, List[ImageRecord]] = {}
        for index in sorted(self._records):
            record = self._records[index]
            by_identity.setdefault(record.identity, []).append(record)

        synced: Dict[int, ImageRecord] = {}
        for index, image in enumerate(self.store):
            candidates = by_identity.get(image.identity)
            record = candidates.pop(0) if candidates else ImageRecord(identity=image.identity)
            if index == 0 and (record.paint_mask is not None or record.composite is not None):
                # Baseline defines the reference frame and carries no mask
                record.paint_mask = None
                record.composite = None
                record.composite_key = None
            synced[index] = record

        released = 0
        for leftovers in by_identity.values():
            for record in leftovers:
                record.release()
                released += 1
        self._records = synced
        if released:
            self.memory_manager.force_gc()

    def record(self, index: int) -> ImageRecord:
        if len(self._records) != len(self.store) or any(
            self._records.get(i) is None or self._records[i].identity != img.identity
            for i, img in enumerate(self.store)
        ):
            self._sync_records()
        return self._records[index]

    def cache_keys(self, index: int) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """(features, alignment, composite) keys currently stored for an image"""
        rec = self.record(index)
        return rec.features_key, rec.alignment_key, rec.composite_key

    def projection(self, index: int) -> Projection:
        """Projection of an image onto the baseline; identity when not aligned"""
        image = self.store[index]
        baseline = self.store[0]
        rec = self.record(index)
        base_rec = self.record(0)

        if rec.features is not None:
            det = rec.features.frame_size
        else:
            det = detection_size(image.width, image.height, self.config.width_limit)
        if base_rec.features is not None:
            base_det = base_rec.features.frame_size
        else:
            base_det = detection_size(baseline.width, baseline.height, self.config.width_limit)

        homography = None
        if index > 0 and rec.alignment is not None:
            homography = rec.alignment.homography
        return Projection(native_size=image.size, detection_size=det,
                          baseline_detection_size=base_det, homography=homography)

    def color(self, index: int) -> Tuple[int, int, int]:
        return display_color(self.store[index].identity, index)

    def _notify(self, message: str):
        if self.warning_callback:
            self.warning_callback(message)

    def _update_progress(self, percentage: int, message: str = ""):
        if self.progress_callback:
            self.progress_callback(percentage, message)

    # ------------------------------------------------------------- paint mask

    def paint_stroke(
        self,
        index: int,
        from_canvas: Tuple[float, float],
        to_canvas: Tuple[float, float],
        canvas_size: Size,
        is_background: bool = False,
        erase: bool = False,
        brush_size: Optional[float] = None
    ):
        """
        Paint a stroke given in canvas coordinates into an image's mask.

        Raises:
            BaselineMaskError: for the baseline image
        """
        if index == 0:
            raise BaselineMaskError("paint")
        rec = self.record(index)
        image = self.store[index]
        if rec.paint_mask is None:
            rec.paint_mask = PaintMask(image.width, image.height)

        paint_stroke(
            rec.paint_mask,
            self.projection(index),
            canvas_size,
            from_canvas,
            to_canvas,
            is_background=is_background,
            erase=erase,
            brush_size=brush_size if brush_size is not None else self.config.brush_size,
        )
        rec.composite_key = None

    def clear_mask(self, index: int, channel: MaskChannel):
        """Reset one channel of an image's paint mask"""
        if index == 0:
            raise BaselineMaskError("clear the mask")
        rec = self.record(index)
        if rec.paint_mask is None:
            return
        rec.paint_mask.clear(channel)
        rec.composite_key = None
        logger.info(f"Cleared {channel.name.lower()} mask of image {index}")

    # ----------------------------------------------------------------- update

    def update_images(self, config: Optional[PipelineConfig] = None) -> UpdateReport:
        """
        Run one orchestration pass.

        Stages run in order: features for all images, then alignment of every
        non-baseline image, then composites. Only stages whose cache key is
        stale are recomputed.

        Args:
            config: Configuration for this pass (validated here); defaults to the last one

        Returns:
            UpdateReport of recomputed stages and absorbed alignment failures

        Raises:
            ConfigurationError: invalid configuration, before any work is done
            NativeComputationError: an OpenCV stage failed; earlier results are kept
        """
        if config is not None:
            self.config = config.validate()
        config = self.config
        self._sync_records()
        report = UpdateReport()
        if len(self.store) == 0:
            return report

        self.memory_manager.checkpoint("update")
        try:
            self._run_stages(config, report)
        except NativeComputationError as e:
            logger.error(f"Update pass aborted: {e}", exc_info=True)
            raise

        if report.recomputed:
            logger.info(
                f"Update pass: features {report.extracted}, aligned {report.aligned}, "
                f"composited {report.composited}, failures {len(report.failures)}"
            )
        diff = self.memory_manager.get_checkpoint_diff("update")
        logger.debug(f"Update pass memory change {diff * 1024:+.1f} MB, "
                     f"peak {self.memory_manager.get_peak_usage():.2f} GB")
        self._update_progress(100, "Done")
        return report

    def _run_stages(self, config: PipelineConfig, report: UpdateReport):
        n_images = len(self.store)

        # Step 1: features
        for i, image in enumerate(self.store):
            rec = self._records[i]
            key = features_key(image.identity, config)
            if rec.features_key == key:
                continue
            self._update_progress(int(40 * i / n_images), f"Detecting features: {i + 1}/{n_images}")
            with self.memory_manager.track_operation(f"features[{i}]"):
                features = extract_features(image, config, image_index=i)
            if rec.features is not None:
                rec.features.release()
                self.memory_manager.force_gc()
            rec.features = features
            rec.features_key = key
            report.extracted.append(i)

        # Step 2: alignment onto the baseline
        baseline = self._records[0]
        for i in range(1, n_images):
            image = self.store[i]
            rec = self._records[i]
            key = alignment_key(image.identity, self.store[0].identity, config)
            if rec.alignment_key == key:
                continue
            self._update_progress(40 + int(30 * i / n_images), f"Aligning image {i + 1}/{n_images}")
            result = None
            if config.alignment_enabled:
                try:
                    with self.memory_manager.track_operation(f"alignment[{i}]"):
                        result = align_feature_sets(
                            baseline.features,
                            rec.features,
                            ratio_threshold=config.ratio_threshold,
                            reproj_threshold=config.ransac_reproj_threshold,
                            image_index=i,
                        )
                except AlignmentFailure as e:
                    e.image_index = i
                    logger.warning(str(e))
                    report.failures.append(e)
                    self._notify(str(e))
            rec.alignment = result
            rec.alignment_key = key
            report.aligned.append(i)

        # Step 3: composites
        for i in range(1, n_images):
            image = self.store[i]
            rec = self._records[i]
            key = composite_key(image.identity, config)
            if rec.composite_key == key:
                continue
            self._update_progress(70 + int(30 * i / n_images), f"Segmenting image {i + 1}/{n_images}")
            carved = None
            if rec.paint_mask is not None:
                with self.memory_manager.track_operation(f"composite[{i}]"):
                    carved = composite(image.pixels, rec.paint_mask, config.segmentation, image_index=i)
            rec.composite = carved
            rec.composite_key = key
            report.composited.append(i)
