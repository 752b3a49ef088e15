import numpy as np
from PySide6.QtWidgets import QWidget
from PySide6.QtGui import QPainter, QPen, QColor, QImage, QFont
from PySide6.QtCore import Qt, QPointF, QRectF


def bitmap_to_qimage(bitmap: np.ndarray) -> QImage:
    """Copy an (H, W, 4) uint8 RGBA bitmap into a QImage."""
    bitmap = np.ascontiguousarray(bitmap, dtype=np.uint8)
    h, w = bitmap.shape[:2]
    return QImage(bitmap.data, w, h, 4 * w, QImage.Format.Format_RGBA8888).copy()


class OverlayCanvas(QWidget):
    """Image view with an optional heatmap layer and labelled region boxes."""

    BOX_COLOR = QColor("#ff5252")

    def __init__(self, parent=None):
        super().__init__(parent)
        self.image = None
        self.heatmap = None
        self.heatmap_opacity = 1.0
        self.boxes = []
        self.show_heatmap = False
        self.show_boxes = False
        self._img_w = 0
        self._img_h = 0
        self._draw_rect = QRectF()
        self.setMinimumSize(400, 400)

    def set_bitmap(self, bitmap: np.ndarray | None):
        if bitmap is None:
            self.image = None
            self._img_w = self._img_h = 0
        else:
            self.image = bitmap_to_qimage(bitmap)
            self._img_w = self.image.width()
            self._img_h = self.image.height()
        self.update()

    def set_heatmap(self, bitmap: np.ndarray | None, opacity: float = 1.0):
        """Heatmap layer; stretched over the image whatever its own size."""
        self.heatmap = None if bitmap is None else bitmap_to_qimage(bitmap)
        self.heatmap_opacity = opacity
        self.update()

    def set_boxes(self, boxes):
        """Boxes in image pixel coordinates (``BoundingBox.scaled`` output)."""
        self.boxes = list(boxes)
        self.update()

    def clear(self):
        self.set_heatmap(None)
        self.set_boxes([])
        self.set_bitmap(None)

    def _compute_draw_rect(self) -> QRectF:
        r = self.rect()
        if self.image is None:
            self._draw_rect = QRectF()
            return self._draw_rect
        prf = QRectF(self.image.rect())
        prf = prf.scaled(r.width(), r.height(), Qt.AspectRatioMode.KeepAspectRatio)
        x = (r.width() - prf.width()) / 2
        y = (r.height() - prf.height()) / 2
        self._draw_rect = QRectF(x, y, prf.width(), prf.height())
        return self._draw_rect

    def paintEvent(self, e):
        p = QPainter(self)
        p.fillRect(self.rect(), QColor("#f5f5f5"))
        dr = self._compute_draw_rect()
        if self.image is None:
            p.setPen(QColor("#666"))
            p.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, "No image loaded")
            return
        p.drawImage(dr, self.image)
        if self.show_heatmap and self.heatmap is not None:
            p.setOpacity(self.heatmap_opacity)
            p.drawImage(dr, self.heatmap)
            p.setOpacity(1.0)
        if self.show_boxes and self.boxes:
            sx = dr.width() / self._img_w
            sy = dr.height() / self._img_h
            p.setPen(QPen(self.BOX_COLOR, 2))
            p.setFont(QFont(p.font().family(), 9))
            for box in self.boxes:
                rect = QRectF(dr.x() + box.x * sx, dr.y() + box.y * sy, box.w * sx, box.h * sy)
                p.drawRect(rect)
                if box.label:
                    p.drawText(QPointF(rect.x(), rect.y() - 4), box.label)
