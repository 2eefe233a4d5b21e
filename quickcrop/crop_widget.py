"""
Crop-frame widget and Qt image helpers.

The widget shows one session item inside the fixed crop frame.  Pointer
events are converted to layout units and fed to the session's drag protocol;
the widget itself holds no geometry beyond the on-screen scale.
"""

from PIL import Image
from PyQt6.QtCore import QPointF, QRectF, Qt, pyqtSignal
from PyQt6.QtGui import (
    QColor, QImage, QMouseEvent, QPainter, QPaintEvent, QPen, QPixmap,
)
from PyQt6.QtWidgets import QSizePolicy, QWidget

from quickcrop.errors import DragInProgress, UnknownItem
from quickcrop.session import Session

# Space kept around the frame inside the widget (screen pixels)
_FRAME_MARGIN = 24


# =============================================================================
# Qt ↔ PIL helpers
# =============================================================================

def pil_to_qpixmap(pil_img: Image.Image) -> QPixmap:
    """Convert a PIL Image to QPixmap."""
    img_rgb = pil_img.convert("RGBA")
    data = img_rgb.tobytes("raw", "RGBA")
    qimg = QImage(data, img_rgb.width, img_rgb.height, QImage.Format.Format_RGBA8888)
    return QPixmap.fromImage(qimg.copy())


# =============================================================================
# Crop Frame Widget
# =============================================================================

class CropFrameWidget(QWidget):
    """Displays one image behind the crop frame and lets the user drag it."""

    offset_changed = pyqtSignal()

    def __init__(self, session: Session, parent=None):
        super().__init__(parent)
        self.setMinimumSize(320, 320)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)

        self._session = session
        self._item_id: str | None = None
        self._pixmap: QPixmap | None = None
        self._dragging = False

    def set_item(self, item_id: str | None):
        """Show the item with the given id, or nothing."""
        if self._dragging:
            self._session.end_drag()
            self._dragging = False
        self._item_id = item_id
        self._pixmap = None
        if item_id is not None:
            item = self._session.item(item_id)
            self._pixmap = pil_to_qpixmap(item.handle)
        self.update()

    def item_id(self) -> str | None:
        return self._item_id

    # --- Coordinate mapping ---

    def _view_scale(self) -> float:
        """Screen pixels per layout unit; shrinks the frame to fit the widget."""
        frame = self._session.frame
        avail_w = max(1, self.width() - 2 * _FRAME_MARGIN)
        avail_h = max(1, self.height() - 2 * _FRAME_MARGIN)
        return min(1.0, avail_w / frame.width, avail_h / frame.height)

    def _frame_rect(self) -> QRectF:
        frame = self._session.frame
        s = self._view_scale()
        w, h = frame.width * s, frame.height * s
        return QRectF((self.width() - w) / 2, (self.height() - h) / 2, w, h)

    def _to_layout(self, pos: QPointF) -> tuple[float, float]:
        s = self._view_scale()
        return pos.x() / s, pos.y() / s

    # --- Painting ---

    def paintEvent(self, event: QPaintEvent):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
        painter.fillRect(self.rect(), self.palette().window())

        if self._pixmap is None or self._item_id is None:
            painter.setPen(QColor(128, 128, 128))
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, "Drop your images here or use Open")
            painter.end()
            return

        item = self._session.item(self._item_id)
        frame_rect = self._frame_rect()
        s = self._view_scale()
        image_rect = QRectF(
            frame_rect.left() + item.x * s,
            frame_rect.top() + item.y * s,
            item.display_width * s,
            item.display_height * s,
        )
        painter.drawPixmap(image_rect, self._pixmap, QRectF(self._pixmap.rect()))

        # Dim the overflow outside the frame
        dim = QColor(0, 0, 0, 140)
        painter.fillRect(QRectF(image_rect.left(), image_rect.top(),
                                image_rect.width(), frame_rect.top() - image_rect.top()), dim)
        painter.fillRect(QRectF(image_rect.left(), frame_rect.bottom(),
                                image_rect.width(), image_rect.bottom() - frame_rect.bottom()), dim)
        painter.fillRect(QRectF(image_rect.left(), frame_rect.top(),
                                frame_rect.left() - image_rect.left(), frame_rect.height()), dim)
        painter.fillRect(QRectF(frame_rect.right(), frame_rect.top(),
                                image_rect.right() - frame_rect.right(), frame_rect.height()), dim)

        painter.setPen(QPen(QColor(255, 255, 255), 2))
        painter.drawRect(frame_rect)

        if not self._dragging:
            painter.setPen(QColor(255, 255, 255, 200))
            painter.drawText(
                frame_rect.adjusted(0, 0, 0, -8),
                Qt.AlignmentFlag.AlignHCenter | Qt.AlignmentFlag.AlignBottom,
                "Drag image to reposition",
            )

        painter.end()

    # --- Mouse interaction ---

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() != Qt.MouseButton.LeftButton or self._item_id is None:
            return
        if not self._frame_rect().contains(event.position()):
            return
        try:
            self._session.begin_drag(self._item_id, *self._to_layout(event.position()))
        except (DragInProgress, UnknownItem):
            return
        self._dragging = True
        self.setCursor(Qt.CursorShape.ClosedHandCursor)

    def mouseMoveEvent(self, event: QMouseEvent):
        if not self._dragging:
            return
        if self._session.dragging != self._item_id:
            # Profile change or removal ended the drag underneath us
            self._dragging = False
            return
        self._session.update_drag(*self._to_layout(event.position()))
        self.offset_changed.emit()
        self.update()

    def mouseReleaseEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton and self._dragging:
            self._session.end_drag()
            self._dragging = False
            self.setCursor(Qt.CursorShape.OpenHandCursor)
            self.offset_changed.emit()
            self.update()
