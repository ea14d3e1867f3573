#!/usr/bin/env python3
"""
SceneCarve - align photos of one scene and carve painted foregrounds
Main entry point for the application
"""

import sys
import argparse
from pathlib import Path
from typing import Dict, List, Optional

import cv2
import yaml

from scenecarve.core.config import PipelineConfig, DetectorType, SegmentationType, ResultView
from scenecarve.core.errors import SceneCarveError
from scenecarve.core.image_store import ImageStore
from scenecarve.core.pipeline import OverlayPipeline
from scenecarve.core.renderer import CompositeRenderer, build_render_items, canvas_size_for
from scenecarve.utils.logger import setup_logger, get_log_file_path

logger = setup_logger(__name__)


def load_strokes(path: Path) -> List[Dict]:
    """
    Read paint strokes from a YAML file.

    Each entry: {image: int, from: [x, y], to: [x, y], background: bool, erase: bool},
    coordinates in canvas pixels.
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get('strokes', [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of strokes")

    strokes = []
    for n, entry in enumerate(data):
        try:
            strokes.append({
                'image': int(entry['image']),
                'from': (float(entry['from'][0]), float(entry['from'][1])),
                'to': (float(entry['to'][0]), float(entry['to'][1])),
                'background': bool(entry.get('background', False)),
                'erase': bool(entry.get('erase', False)),
                'brush_size': entry.get('brush_size'),
            })
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ValueError(f"{path}: invalid stroke #{n}: {e}") from e
    return strokes


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SceneCarve - align photos onto a baseline and carve painted foregrounds"
    )
    parser.add_argument(
        "--cli",
        action="store_true",
        help="Run in command-line mode instead of GUI"
    )
    parser.add_argument(
        "--images",
        nargs="+",
        type=str,
        help="Input images; the first one is the baseline"
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Output PNG for the rendered result"
    )
    parser.add_argument(
        "--strokes",
        type=str,
        help="YAML file with paint strokes in canvas coordinates"
    )
    parser.add_argument(
        "--detector",
        type=str,
        default=DetectorType.AKAZE.value,
        choices=[d.value for d in DetectorType],
        help="Feature detector algorithm (default: akaze)"
    )
    parser.add_argument(
        "--segmentation",
        type=str,
        default=SegmentationType.WATERSHED.value,
        choices=[s.value for s in SegmentationType],
        help="Segmentation algorithm (default: watershed)"
    )
    parser.add_argument("--ratio", type=float, default=0.7, help="Ratio test threshold (default: 0.7)")
    parser.add_argument("--width-limit", type=int, default=800, help="Detection width limit (default: 800)")
    parser.add_argument("--max-features", type=int, default=200, help="ORB max features (default: 200)")
    parser.add_argument("--edge-threshold", type=int, default=31, help="ORB edge threshold (default: 31)")
    parser.add_argument("--brush-size", type=int, default=2, help="Default stroke radius in canvas px")
    parser.add_argument("--no-align", action="store_true", help="Disable automatic alignment")
    parser.add_argument(
        "--view",
        type=str,
        default=ResultView.FULL.value,
        choices=[v.value for v in ResultView],
        help="What to render (default: full)"
    )
    parser.add_argument("--selected", type=int, default=-1, help="Selected image for split view")
    parser.add_argument("--canvas-width", type=int, default=1600, help="Maximum output width")
    parser.add_argument("--debug-dir", type=str, help="Write keypoint/match visualisations here")
    return parser


def run_cli(args) -> int:
    """Batch mode: load, paint, align, carve, render"""
    from scenecarve.core.debug_view import write_debug_images

    if not args.images or not args.output:
        logger.error("--images and --output are required in CLI mode")
        return 1

    config = PipelineConfig(
        detector=args.detector,
        width_limit=args.width_limit,
        max_features=args.max_features,
        edge_threshold=args.edge_threshold,
        ratio_threshold=args.ratio,
        segmentation=args.segmentation,
        alignment_enabled=not args.no_align,
        brush_size=args.brush_size,
    )

    store = ImageStore()
    for image_path in args.images:
        path = Path(image_path)
        if not path.exists():
            logger.error(f"Input image does not exist: {path}")
            return 1
        store.add_image_file(path)

    pipeline = OverlayPipeline(store, warning_callback=lambda msg: logger.warning(msg))
    baseline = store.baseline
    canvas_size = canvas_size_for(baseline.width, baseline.height, args.canvas_width)

    # Align first so strokes are mapped through the final projections
    pipeline.update_images(config)

    if args.strokes:
        strokes = load_strokes(Path(args.strokes))
        for stroke in strokes:
            pipeline.paint_stroke(
                stroke['image'], stroke['from'], stroke['to'], canvas_size,
                is_background=stroke['background'],
                erase=stroke['erase'],
                brush_size=stroke['brush_size'],
            )
        logger.info(f"Replayed {len(strokes)} strokes")
        pipeline.update_images()

    if args.debug_dir:
        write_debug_images(pipeline, Path(args.debug_dir))

    renderer = CompositeRenderer(canvas_size)
    result = renderer.render(build_render_items(pipeline, show_masks=False),
                             view=ResultView(args.view), selected=args.selected)
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(output), result):
        logger.error(f"Could not write {output}")
        return 1
    logger.info(f"Result saved to {output}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cli:
        try:
            return run_cli(args)
        except (SceneCarveError, ValueError, OSError) as e:
            logger.error(f"Processing failed: {e}", exc_info=True)
            log_file = get_log_file_path()
            if log_file is not None:
                print(f"Processing failed: {e}\nDetails in {log_file.absolute()}", file=sys.stderr)
            return 1

    # GUI mode
    from PyQt6.QtWidgets import QApplication
    from scenecarve.gui.main_window import MainWindow

    app = QApplication(sys.argv)
    app.setApplicationName("SceneCarve")
    app.setOrganizationName("SceneCarve")

    window = MainWindow()
    window.show()

    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
