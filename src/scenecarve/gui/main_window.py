"""
Main GUI window for SceneCarve
Load photos, paint foreground/background hints and view the carved overlay
"""

from pathlib import Path
from typing import Optional
import logging
import numpy as np
import cv2

from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QPushButton,
    QFileDialog, QLabel, QTextEdit, QTabWidget, QGroupBox, QSpinBox,
    QDoubleSpinBox, QCheckBox, QComboBox, QMessageBox, QListWidget,
    QScrollArea, QRadioButton
)
from PyQt6.QtCore import Qt, pyqtSignal, QPointF
from PyQt6.QtGui import QPixmap, QImage, QFont, QMouseEvent

from scenecarve.core.config import DetectorType, SegmentationType, ResultView
from scenecarve.core.errors import SceneCarveError, ConfigurationError
from scenecarve.core.image_store import ImageStore, IMAGE_EXTENSIONS
from scenecarve.core.paint_mask import MaskChannel
from scenecarve.core.pipeline import OverlayPipeline
from scenecarve.core.renderer import CompositeRenderer, build_render_items, canvas_size_for
from scenecarve.utils.logger import setup_logger, get_log_file_path
from scenecarve.utils.settings_store import SettingsStore

logger = setup_logger(__name__)

MAX_CANVAS_WIDTH = 1000


class PaintCanvas(QLabel):
    """Preview label that reports mouse drags as canvas-space segments"""

    stroke = pyqtSignal(QPointF, QPointF)
    stroke_finished = pyqtSignal()

    def __init__(self):
        super().__init__("Add images to begin")
        self.setAlignment(Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignTop)
        self._last: Optional[QPointF] = None

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton:
            self._last = event.position()
            self.stroke.emit(self._last, self._last)

    def mouseMoveEvent(self, event: QMouseEvent):
        if self._last is not None:
            pos = event.position()
            self.stroke.emit(self._last, pos)
            self._last = pos

    def mouseReleaseEvent(self, event: QMouseEvent):
        if self._last is not None:
            self._last = None
            self.stroke_finished.emit()


class MainWindow(QMainWindow):
    """Main application window"""

    def __init__(self, settings: Optional[SettingsStore] = None):
        super().__init__()
        self.settings = settings or SettingsStore()
        self.store = ImageStore()
        self.pipeline = OverlayPipeline(self.store, warning_callback=self._show_warning)
        self._canvas_size = (MAX_CANVAS_WIDTH, MAX_CANVAS_WIDTH * 3 // 4)
        self.init_ui()
        log_file = get_log_file_path()
        if log_file is not None:
            self.log(f"Log file: {log_file.absolute()}")

    def init_ui(self):
        """Initialize user interface"""
        self.setWindowTitle("SceneCarve")
        self.setMinimumSize(1200, 800)

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        main_layout = QHBoxLayout(central_widget)
        main_layout.addWidget(self.create_control_panel(), 1)
        main_layout.addWidget(self.create_preview_panel(), 3)

        self.statusBar().showMessage("Ready")

    def create_control_panel(self) -> QWidget:
        """Create control panel"""
        scroll_area = QScrollArea()
        scroll_area.setWidgetResizable(True)
        scroll_area.setMinimumWidth(300)

        panel = QWidget()
        layout = QVBoxLayout(panel)
        s = self.settings

        # Images
        file_group = QGroupBox("Images (first is the baseline)")
        file_layout = QVBoxLayout()
        self.image_list = QListWidget()
        self.image_list.currentRowChanged.connect(self.on_selection_changed)
        file_layout.addWidget(self.image_list)
        btn_layout = QHBoxLayout()
        self.btn_add_images = QPushButton("Add Images...")
        self.btn_add_images.clicked.connect(self.add_images)
        self.btn_remove_image = QPushButton("Remove Selected")
        self.btn_remove_image.clicked.connect(self.remove_selected_image)
        btn_layout.addWidget(self.btn_add_images)
        btn_layout.addWidget(self.btn_remove_image)
        file_layout.addLayout(btn_layout)
        file_group.setLayout(file_layout)
        layout.addWidget(file_group)

        # Alignment settings
        align_group = QGroupBox("Alignment")
        align_layout = QVBoxLayout()

        self.align_checkbox = QCheckBox("Align automatically")
        self.align_checkbox.setChecked(s.get('alignment_enabled'))
        self.align_checkbox.toggled.connect(lambda v: self._set_setting('alignment_enabled', v))
        align_layout.addWidget(self.align_checkbox)

        self.detector_combo = QComboBox()
        self.detector_combo.addItems([d.value for d in DetectorType])
        self.detector_combo.setCurrentText(s.get('detector'))
        self.detector_combo.currentTextChanged.connect(self._on_detector_changed)
        align_layout.addLayout(self._row("Detector:", self.detector_combo))

        self.width_limit_spin = self._spin(16, 16384, s.get('width_limit'), 'width_limit', step=100)
        align_layout.addLayout(self._row("Detection width:", self.width_limit_spin))

        self.max_features_spin = self._spin(1, 100000, s.get('max_features'), 'max_features', step=50)
        align_layout.addLayout(self._row("Max features (ORB):", self.max_features_spin))

        self.edge_threshold_spin = self._spin(1, 255, s.get('edge_threshold'), 'edge_threshold')
        align_layout.addLayout(self._row("Edge threshold (ORB):", self.edge_threshold_spin))

        self.ratio_spin = QDoubleSpinBox()
        self.ratio_spin.setRange(0.05, 1.0)
        self.ratio_spin.setSingleStep(0.05)
        self.ratio_spin.setDecimals(2)
        self.ratio_spin.setValue(s.get('ratio_threshold'))
        self.ratio_spin.valueChanged.connect(lambda v: self._set_setting('ratio_threshold', float(v)))
        align_layout.addLayout(self._row("Ratio test:", self.ratio_spin))

        align_group.setLayout(align_layout)
        layout.addWidget(align_group)
        self._update_orb_controls(s.get('detector'))

        # Segmentation and brush
        brush_group = QGroupBox("Segmentation")
        brush_layout = QVBoxLayout()

        self.segmentation_combo = QComboBox()
        self.segmentation_combo.addItems([t.value for t in SegmentationType])
        self.segmentation_combo.setCurrentText(s.get('segmentation'))
        self.segmentation_combo.currentTextChanged.connect(lambda v: self._set_setting('segmentation', v))
        brush_layout.addLayout(self._row("Algorithm:", self.segmentation_combo))

        self.brush_spin = self._spin(1, 512, s.get('brush_size'), 'brush_size', refresh=False)
        brush_layout.addLayout(self._row("Brush size:", self.brush_spin))

        self.fg_radio = QRadioButton("Foreground")
        self.bg_radio = QRadioButton("Background")
        self.fg_radio.setChecked(s.get('brush_foreground'))
        self.bg_radio.setChecked(not s.get('brush_foreground'))
        self.fg_radio.toggled.connect(lambda v: self.settings.set('brush_foreground', bool(v)))
        radio_layout = QHBoxLayout()
        radio_layout.addWidget(self.fg_radio)
        radio_layout.addWidget(self.bg_radio)
        brush_layout.addLayout(radio_layout)

        self.eraser_checkbox = QCheckBox("Eraser")
        self.eraser_checkbox.setChecked(s.get('eraser'))
        self.eraser_checkbox.toggled.connect(lambda v: self.settings.set('eraser', bool(v)))
        brush_layout.addWidget(self.eraser_checkbox)

        clear_layout = QHBoxLayout()
        btn_clear_fg = QPushButton("Clear Foreground")
        btn_clear_fg.clicked.connect(lambda: self.clear_mask(MaskChannel.FOREGROUND))
        btn_clear_bg = QPushButton("Clear Background")
        btn_clear_bg.clicked.connect(lambda: self.clear_mask(MaskChannel.BACKGROUND))
        clear_layout.addWidget(btn_clear_fg)
        clear_layout.addWidget(btn_clear_bg)
        brush_layout.addLayout(clear_layout)

        self.view_combo = QComboBox()
        self.view_combo.addItems([v.value for v in ResultView])
        self.view_combo.setCurrentText(s.get('result_view'))
        self.view_combo.currentTextChanged.connect(self._on_view_changed)
        brush_layout.addLayout(self._row("Show result:", self.view_combo))

        brush_group.setLayout(brush_layout)
        layout.addWidget(brush_group)
        layout.addStretch()

        scroll_area.setWidget(panel)
        return scroll_area

    def create_preview_panel(self) -> QWidget:
        """Create preview panel"""
        panel = QWidget()
        layout = QVBoxLayout(panel)
        tabs = QTabWidget()

        self.canvas = PaintCanvas()
        self.canvas.stroke.connect(self.on_stroke)
        self.canvas.stroke_finished.connect(self.refresh)
        preview_scroll = QScrollArea()
        preview_scroll.setWidget(self.canvas)
        preview_scroll.setWidgetResizable(False)
        preview_scroll.setStyleSheet("background-color: #2d2d2d;")
        tabs.addTab(preview_scroll, "Preview")

        self.log_text = QTextEdit()
        self.log_text.setReadOnly(True)
        self.log_text.setFont(QFont("Courier", 9))
        tabs.addTab(self.log_text, "Logs")

        layout.addWidget(tabs)
        return panel

    def _row(self, label: str, widget: QWidget) -> QHBoxLayout:
        row = QHBoxLayout()
        row.addWidget(QLabel(label))
        row.addWidget(widget)
        return row

    def _spin(self, low: int, high: int, value: int, key: str, step: int = 1, refresh: bool = True) -> QSpinBox:
        spin = QSpinBox()
        spin.setRange(low, high)
        spin.setSingleStep(step)
        spin.setValue(value)
        spin.valueChanged.connect(lambda v: self._set_setting(key, int(v), refresh=refresh))
        return spin

    # ------------------------------------------------------------ settings

    def _set_setting(self, key: str, value, refresh: bool = True):
        self.settings.set(key, value)
        if refresh:
            self.refresh()

    def _on_detector_changed(self, text: str):
        self._update_orb_controls(text)
        self._set_setting('detector', text)

    def _update_orb_controls(self, detector: str):
        is_orb = detector == DetectorType.ORB.value
        self.max_features_spin.setEnabled(is_orb)
        self.edge_threshold_spin.setEnabled(is_orb)

    def _on_view_changed(self, text: str):
        self.settings.set('result_view', text)
        self.render()

    # -------------------------------------------------------------- images

    def add_images(self):
        """Add image files"""
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        files, _ = QFileDialog.getOpenFileNames(self, "Add Images", "", f"Images ({patterns})")
        if not files:
            return
        for name in files:
            try:
                self.store.add_image_file(Path(name))
                self.image_list.addItem(Path(name).name)
            except SceneCarveError as e:
                self.on_error(str(e))
        baseline = self.store.baseline
        if baseline is not None:
            self._canvas_size = canvas_size_for(baseline.width, baseline.height, MAX_CANVAS_WIDTH)
        self.log(f"Loaded {len(files)} image(s). Total: {len(self.store)}")
        self.refresh()

    def remove_selected_image(self):
        """Remove selected image from list"""
        current = self.image_list.currentRow()
        if current < 0:
            return
        self.store.remove_image(current)
        self.image_list.takeItem(current)
        baseline = self.store.baseline
        if baseline is not None:
            self._canvas_size = canvas_size_for(baseline.width, baseline.height, MAX_CANVAS_WIDTH)
        self.log("Removed image from list")
        self.refresh()

    def on_selection_changed(self, row: int):
        self.settings.set('selected_image', max(row, 0))
        self.render()

    @property
    def selected(self) -> int:
        return self.image_list.currentRow()

    # --------------------------------------------------------------- paint

    def on_stroke(self, start: QPointF, end: QPointF):
        index = self.selected
        if index <= 0:
            self.statusBar().showMessage("Select a non-baseline image to paint")
            return
        self.pipeline.paint_stroke(
            index,
            (start.x(), start.y()),
            (end.x(), end.y()),
            self._canvas_size,
            is_background=not self.settings.get('brush_foreground'),
            erase=self.settings.get('eraser'),
            brush_size=self.settings.get('brush_size'),
        )
        self.render()

    def clear_mask(self, channel: MaskChannel):
        index = self.selected
        if index <= 0:
            return
        self.pipeline.clear_mask(index, channel)
        self.refresh()

    # -------------------------------------------------------------- update

    def refresh(self):
        """Run an update pass with the current settings and redraw"""
        if len(self.store) == 0:
            return
        try:
            report = self.pipeline.update_images(self.settings.pipeline_config())
        except ConfigurationError as e:
            self.on_error(str(e))
            return
        except SceneCarveError as e:
            logger.error(f"Update failed: {e}", exc_info=True)
            self.on_error(str(e))
        else:
            if report.recomputed:
                self.log(f"Features: {report.extracted}, aligned: {report.aligned}, "
                         f"composited: {report.composited}")
        self.render()

    def render(self):
        if len(self.store) == 0:
            return
        renderer = CompositeRenderer(self._canvas_size)
        image = renderer.render(
            build_render_items(self.pipeline),
            view=ResultView(self.settings.get('result_view')),
            selected=self.selected,
        )
        self.update_preview(image)

    def update_preview(self, image: np.ndarray):
        """Show a BGR canvas at 1:1 so mouse positions are canvas pixels"""
        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        h, w = rgb.shape[:2]
        qimage = QImage(rgb.data, w, h, 3 * w, QImage.Format.Format_RGB888).copy()
        self.canvas.setPixmap(QPixmap.fromImage(qimage))
        self.canvas.resize(w, h)

    def _show_warning(self, message: str):
        self.log(message)
        QMessageBox.warning(self, "Alignment", message)

    def on_error(self, error_msg: str):
        """Handle errors"""
        self.log(f"Error: {error_msg}")
        QMessageBox.critical(self, "Error", f"An error occurred:\n{error_msg}")

    def log(self, message: str):
        """Add message to log"""
        self.log_text.append(message)
        logger.info(message)
        self.statusBar().showMessage(message)
