"""
Main application window.

Wires file selection, the crop-frame editor, profile buttons and export
settings to a ``Session``, and runs exports on a background thread through
an ``ExportPipeline`` writing into a chosen folder.
"""

import asyncio
from pathlib import Path

from PyQt6.QtCore import Qt, QThread, pyqtSignal
from PyQt6.QtGui import QAction, QDragEnterEvent, QDropEvent, QKeySequence
from PyQt6.QtWidgets import (
    QCheckBox, QComboBox, QFileDialog, QGroupBox, QHBoxLayout, QLabel,
    QLineEdit, QListWidget, QListWidgetItem, QMainWindow, QMessageBox,
    QPushButton, QSlider, QSplitter, QStatusBar, QToolBar, QVBoxLayout, QWidget,
)

from quickcrop.config import IMAGE_EXTENSIONS, MAX_INGEST_ITEMS
from quickcrop.crop_widget import CropFrameWidget
from quickcrop.errors import InvalidConfiguration, QuickCropError
from quickcrop.export import MODE_ARCHIVE, MODE_SEQUENTIAL, ExportPipeline, ExportResult, FolderSink
from quickcrop.image_io import SourceFile
from quickcrop.models import FORMAT_SPECS, ExportFormat
from quickcrop.ratios import DEFAULT_PROFILES, aspect_key, output_label
from quickcrop.session import Session


# =============================================================================
# Background export
# =============================================================================

class ExportThread(QThread):
    """Runs one pipeline export on its own event loop."""
    done = pyqtSignal(object)
    error = pyqtSignal(str)

    def __init__(self, session: Session, pipeline: ExportPipeline, parent=None):
        super().__init__(parent)
        self._session = session
        self._pipeline = pipeline

    def run(self):
        try:
            result = asyncio.run(self._session.export(self._pipeline))
            self.done.emit(result)
        except QuickCropError as e:
            self.error.emit(str(e))


class MainWindow(QMainWindow):
    theme_toggled = pyqtSignal(bool)

    def __init__(self, session: Session | None = None):
        super().__init__()
        self.setWindowTitle("QuickCrop")
        self.setMinimumSize(900, 600)
        self.setAcceptDrops(True)

        self._session = session or Session()
        self._sink: FolderSink | None = None
        self._pipeline = ExportPipeline(self._deliver)
        self._export_thread: ExportThread | None = None
        self._dark = True

        self._build_ui()
        self._sync_settings_controls()
        self._update_button_states()

    # =========================================================================
    # UI construction
    # =========================================================================

    def _build_ui(self):
        self._build_toolbar()

        splitter = QSplitter(Qt.Orientation.Horizontal)
        self._image_list = QListWidget()
        self._image_list.currentRowChanged.connect(self._on_image_selected)
        splitter.addWidget(self._image_list)

        self._crop_widget = CropFrameWidget(self._session)
        self._crop_widget.offset_changed.connect(self._update_crop_info)
        splitter.addWidget(self._crop_widget)

        splitter.addWidget(self._build_right_panel())
        splitter.setSizes([220, 700, 300])
        self.setCentralWidget(splitter)

        self._status = QStatusBar()
        self.setStatusBar(self._status)
        self._status.showMessage(f"Open up to {MAX_INGEST_ITEMS} images to get started.")

    def _build_toolbar(self):
        toolbar = QToolBar("Main")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        self._act_open = QAction("Open Images…", self)
        self._act_open.setShortcut(QKeySequence.StandardKey.Open)
        self._act_open.triggered.connect(self._select_images)
        toolbar.addAction(self._act_open)

        self._act_remove = QAction("Remove", self)
        self._act_remove.setShortcut(QKeySequence.StandardKey.Delete)
        self._act_remove.triggered.connect(self._remove_current)
        toolbar.addAction(self._act_remove)

        self._act_reset = QAction("Start Over", self)
        self._act_reset.triggered.connect(self._reset)
        toolbar.addAction(self._act_reset)

        toolbar.addSeparator()

        self._act_export = QAction("Export…", self)
        self._act_export.setShortcut(QKeySequence("Ctrl+E"))
        self._act_export.triggered.connect(self._export)
        toolbar.addAction(self._act_export)

        toolbar.addSeparator()

        act_theme = QAction("Toggle Theme", self)
        act_theme.triggered.connect(self._toggle_theme)
        toolbar.addAction(act_theme)

    def _build_right_panel(self) -> QWidget:
        panel = QWidget()
        layout = QVBoxLayout(panel)
        layout.addWidget(self._build_ratio_group())
        layout.addWidget(self._build_export_group())
        self._crop_info = QLabel()
        self._crop_info.setWordWrap(True)
        layout.addWidget(self._crop_info)
        layout.addStretch(1)
        return panel

    def _build_ratio_group(self) -> QGroupBox:
        group = QGroupBox("Choose Format")
        self._ratio_group = group
        layout = QVBoxLayout(group)
        self._ratio_buttons: dict[str, QPushButton] = {}
        for profile in DEFAULT_PROFILES:
            btn = QPushButton(
                f"{profile.label}  ({aspect_key(profile.ratio_w, profile.ratio_h)})\n"
                f"{profile.description}\n{output_label(profile)}"
            )
            btn.setCheckable(True)
            btn.clicked.connect(lambda _checked, pid=profile.id: self._on_profile_selected(pid))
            layout.addWidget(btn)
            self._ratio_buttons[profile.id] = btn
        return group

    def _build_export_group(self) -> QGroupBox:
        group = QGroupBox("Export Settings")
        self._export_group = group
        layout = QVBoxLayout(group)

        layout.addWidget(QLabel("Format"))
        self._format_combo = QComboBox()
        for fmt in ExportFormat:
            self._format_combo.addItem(fmt.value.upper(), fmt.value)
        self._format_combo.currentIndexChanged.connect(self._on_format_changed)
        layout.addWidget(self._format_combo)

        self._quality_label = QLabel()
        layout.addWidget(self._quality_label)
        self._quality_slider = QSlider(Qt.Orientation.Horizontal)
        self._quality_slider.setRange(1, 10)  # tenths
        self._quality_slider.valueChanged.connect(self._on_quality_changed)
        layout.addWidget(self._quality_slider)

        layout.addWidget(QLabel("Filename"))
        self._filename_edit = QLineEdit()
        self._filename_edit.setPlaceholderText("image-cropped")
        self._filename_edit.editingFinished.connect(self._on_filename_changed)
        layout.addWidget(self._filename_edit)

        self._preserve_check = QCheckBox("Preserve original size")
        self._preserve_check.toggled.connect(self._on_preserve_changed)
        layout.addWidget(self._preserve_check)

        row = QHBoxLayout()
        self._btn_export = QPushButton("Download")
        self._btn_export.clicked.connect(self._export)
        row.addWidget(self._btn_export)
        layout.addLayout(row)
        return group

    # =========================================================================
    # Settings <-> controls
    # =========================================================================

    def _sync_settings_controls(self):
        """Push the session's current settings into the controls."""
        settings = self._session.settings
        for widget in (self._format_combo, self._quality_slider, self._filename_edit, self._preserve_check):
            widget.blockSignals(True)
        self._format_combo.setCurrentIndex(self._format_combo.findData(settings.format.value))
        self._quality_slider.setValue(max(1, round(settings.quality * 10)))
        self._filename_edit.setText(settings.filename)
        self._preserve_check.setChecked(settings.preserve_original_size)
        for widget in (self._format_combo, self._quality_slider, self._filename_edit, self._preserve_check):
            widget.blockSignals(False)

        lossy = FORMAT_SPECS[settings.format].lossy
        self._quality_label.setText(f"Quality: {round(settings.quality * 100)}%")
        self._quality_label.setVisible(lossy)
        self._quality_slider.setVisible(lossy)

        for pid, btn in self._ratio_buttons.items():
            btn.setChecked(pid == self._session.profile.id)

    def _apply_settings(self, **changes):
        if self._is_busy():
            self._sync_settings_controls()
            return
        try:
            self._session.update_export_settings(**changes)
        except InvalidConfiguration as exc:
            self._status.showMessage(str(exc).replace("\n  ", " "))
        self._sync_settings_controls()

    def _on_format_changed(self, _index: int):
        self._apply_settings(format=self._format_combo.currentData())

    def _on_quality_changed(self, value: int):
        self._apply_settings(quality=value / 10)

    def _on_filename_changed(self):
        self._apply_settings(filename=self._filename_edit.text())

    def _on_preserve_changed(self, checked: bool):
        self._apply_settings(preserve_original_size=checked)

    def _on_profile_selected(self, profile_id: str):
        if self._is_busy():
            self._sync_settings_controls()
            return
        self._session.set_aspect_ratio_profile(profile_id)
        self._sync_settings_controls()
        self._crop_widget.update()
        self._update_crop_info()

    # =========================================================================
    # Image list
    # =========================================================================

    def _select_images(self):
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        files, _ = QFileDialog.getOpenFileNames(self, "Open Images", "", f"Images ({patterns})")
        if files:
            self._ingest_paths([Path(f) for f in files])

    def dragEnterEvent(self, event: QDragEnterEvent):
        if event.mimeData().hasUrls():
            event.acceptProposedAction()

    def dropEvent(self, event: QDropEvent):
        paths = [Path(u.toLocalFile()) for u in event.mimeData().urls() if u.isLocalFile()]
        if paths:
            self._ingest_paths(paths)

    def _ingest_paths(self, paths: list[Path]):
        if self._is_busy():
            return
        sources = []
        for path in paths[:MAX_INGEST_ITEMS]:
            try:
                sources.append(SourceFile.from_path(path))
            except OSError:
                continue
        result = self._session.ingest(sources)
        if result.accepted:
            # The previous images were replaced and released
            self._crop_widget.set_item(None)
        self._rebuild_list()
        self._sync_settings_controls()
        if result.accepted:
            self._image_list.setCurrentRow(0)

        msg = f"Loaded {len(result.accepted)} image(s)"
        if result.failures:
            msg += f", {len(result.failures)} could not be read"
        if len(paths) > MAX_INGEST_ITEMS:
            msg += f" (only the first {MAX_INGEST_ITEMS} were used)"
        self._status.showMessage(msg)

    def _rebuild_list(self):
        self._image_list.blockSignals(True)
        self._image_list.clear()
        total = len(self._session)
        for i, item in enumerate(self._session.items):
            entry = QListWidgetItem(f"  Image {i + 1} of {total}: {item.name}  ({item.natural_width}×{item.natural_height})")
            entry.setData(Qt.ItemDataRole.UserRole, item.id)
            self._image_list.addItem(entry)
        self._image_list.blockSignals(False)
        self._update_button_states()

    def _on_image_selected(self, row: int):
        entry = self._image_list.item(row) if row >= 0 else None
        self._crop_widget.set_item(entry.data(Qt.ItemDataRole.UserRole) if entry else None)
        self._update_crop_info()
        self._update_button_states()

    def _remove_current(self):
        item_id = self._crop_widget.item_id()
        if item_id is None:
            return
        row = self._image_list.currentRow()
        self._crop_widget.set_item(None)
        self._session.remove(item_id)
        self._rebuild_list()
        if len(self._session):
            self._image_list.setCurrentRow(min(row, len(self._session) - 1))
        else:
            self._on_image_selected(-1)

    def _reset(self):
        self._crop_widget.set_item(None)
        self._session.reset()
        self._rebuild_list()
        self._on_image_selected(-1)
        self._status.showMessage("Session cleared.")

    def _update_crop_info(self):
        item_id = self._crop_widget.item_id()
        if item_id is None:
            self._crop_info.setText("")
            return
        item = self._session.item(item_id)
        frame = self._session.frame
        self._crop_info.setText(
            f"Frame {frame.width:.0f} × {frame.height:.0f}\n"
            f"Offset ({item.x:.1f}, {item.y:.1f})"
        )

    def _is_busy(self) -> bool:
        return self._pipeline.busy or self._export_thread is not None

    def _update_button_states(self):
        has_images = len(self._session) > 0
        busy = self._is_busy()
        self._act_open.setEnabled(not busy)
        self._ratio_group.setEnabled(not busy)
        self._export_group.setEnabled(not busy)
        self._act_remove.setEnabled(has_images and self._crop_widget.item_id() is not None and not busy)
        self._act_reset.setEnabled(has_images and not busy)
        self._act_export.setEnabled(has_images and not busy)
        self._btn_export.setEnabled(has_images and not busy)
        self._btn_export.setText(
            "Processing…" if busy else
            f"Download {len(self._session)} Images" if len(self._session) > 1 else "Download Cropped Image"
        )

    # =========================================================================
    # Export
    # =========================================================================

    def _deliver(self, artifact):
        self._sink(artifact)

    def _export(self):
        if self._export_thread is not None or not len(self._session):
            return
        folder = QFileDialog.getExistingDirectory(self, "Select Output Folder")
        if not folder:
            return
        self._sink = FolderSink(Path(folder))

        self._crop_widget.setEnabled(False)
        self._export_thread = ExportThread(self._session, self._pipeline, self)
        self._export_thread.done.connect(self._on_export_done)
        self._export_thread.error.connect(self._on_export_error)
        self._export_thread.finished.connect(self._on_export_finished)
        self._export_thread.start()
        self._update_button_states()
        self._status.showMessage("Exporting…")

    def _on_export_done(self, result: ExportResult):
        names = ", ".join(p.name for p in self._sink.written)
        if result.mode == MODE_SEQUENTIAL:
            self._status.showMessage(f"Archive failed, saved files individually: {names}")
        elif result.mode == MODE_ARCHIVE:
            self._status.showMessage(f"Saved {len(self._session)} images as {names}")
        else:
            self._status.showMessage(f"Saved {names}")

    def _on_export_error(self, message: str):
        QMessageBox.critical(self, "Export failed", message)
        self._status.showMessage("Export failed.")

    def _on_export_finished(self):
        self._export_thread = None
        self._crop_widget.setEnabled(True)
        self._update_button_states()

    # =========================================================================
    # Theme
    # =========================================================================

    def _toggle_theme(self):
        self._dark = not self._dark
        self.theme_toggled.emit(self._dark)

    # =========================================================================
    # Shutdown
    # =========================================================================

    def closeEvent(self, event):
        """Release decoded images before closing."""
        if self._export_thread is not None:
            self._export_thread.wait()
        self._session.reset()
        super().closeEvent(event)
