"""
Render pass: draw a LayoutResult onto a reportlab canvas.
"""

from io import BytesIO
from typing import List, Optional
import logging

from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from lyra.core.constants import (
    COLOR_BORDER, COLOR_FOOTER, FONT_SIZE_FOOTER, FOOTER_HEIGHT, MARGIN_LEFT, MARGIN_RIGHT
)
from lyra.pdf.fonts import FontProvider, StandardFontProvider
from lyra.pdf.layout import Command, LayoutResult, Line, LinkArea, Rect, TextRun

logger = logging.getLogger(__name__)


def _rgb(color):
    return tuple(c / 255.0 for c in color)


class PdfRenderer:
    """Second pass: converts millimetre, top-left commands to PDF points"""

    def __init__(self, font: Optional[FontProvider] = None):
        self.font = font or StandardFontProvider()

    def render(self, result: LayoutResult) -> bytes:
        self.font.ensure_ready()
        width, height = result.page_size
        self.height = height

        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=(width * mm, height * mm))
        pdf.setTitle(result.title)
        pdf.setCreator('Lyra Exporter')

        anchors_by_page = {}
        for anchor in result.anchors:
            anchors_by_page.setdefault(anchor.page, []).append(anchor)

        total = result.page_count
        for number, commands in enumerate(result.pages, 1):
            self._draw_commands(pdf, commands)
            for anchor in anchors_by_page.get(number, []):
                self._bookmark(pdf, anchor)
            self._footer(pdf, number, total, width, result.export_date)
            pdf.showPage()

        if result.anchors:
            pdf.showOutline()
        pdf.save()

        logger.debug(f"Rendered {total} PDF pages")
        return buffer.getvalue()

    def _y(self, y: float) -> float:
        return (self.height - y) * mm

    def _draw_commands(self, pdf: canvas.Canvas, commands: List[Command]):
        for cmd in commands:
            if isinstance(cmd, TextRun):
                pdf.setFillColorRGB(*_rgb(cmd.color))
                pdf.setFont(cmd.font, cmd.size)
                if cmd.align == 'right':
                    pdf.drawRightString(cmd.x * mm, self._y(cmd.y), cmd.text)
                else:
                    pdf.drawString(cmd.x * mm, self._y(cmd.y), cmd.text)
            elif isinstance(cmd, Rect):
                self._rect(pdf, cmd)
            elif isinstance(cmd, Line):
                pdf.setStrokeColorRGB(*_rgb(cmd.color))
                pdf.setLineWidth(cmd.width * mm)
                pdf.line(cmd.x1 * mm, self._y(cmd.y1), cmd.x2 * mm, self._y(cmd.y2))
            elif isinstance(cmd, LinkArea):
                self._link(pdf, cmd)

    def _rect(self, pdf: canvas.Canvas, cmd: Rect):
        fill = cmd.fill is not None
        stroke = cmd.stroke is not None
        if not (fill or stroke):
            return
        if fill:
            pdf.setFillColorRGB(*_rgb(cmd.fill))
        if stroke:
            pdf.setStrokeColorRGB(*_rgb(cmd.stroke))
            pdf.setLineWidth(cmd.line_width * mm)

        x, y = cmd.x * mm, self._y(cmd.y + cmd.height)
        w, h = cmd.width * mm, cmd.height * mm
        if cmd.radius:
            pdf.roundRect(x, y, w, h, cmd.radius * mm, stroke=int(stroke), fill=int(fill))
        else:
            pdf.rect(x, y, w, h, stroke=int(stroke), fill=int(fill))

    def _link(self, pdf: canvas.Canvas, cmd: LinkArea):
        rect = (cmd.x * mm, self._y(cmd.y + cmd.height),
                (cmd.x + cmd.width) * mm, self._y(cmd.y))
        if cmd.destination:
            pdf.linkRect('', cmd.destination, rect, relative=0, thickness=0)
        elif cmd.url:
            pdf.linkURL(cmd.url, rect, relative=0, thickness=0)

    def _bookmark(self, pdf: canvas.Canvas, anchor):
        # Destination a little above the sender baseline so the line is visible
        pdf.bookmarkHorizontal(anchor.key, 0, self._y(anchor.y - 8))
        try:
            pdf.addOutlineEntry(anchor.label, anchor.key, level=0)
        except ValueError as e:
            logger.warning(f"Could not add outline entry for {anchor.label}: {e}")

    def _footer(self, pdf: canvas.Canvas, number: int, total: int, width: float,
                export_date: str):
        line_y = self._y(self.height - FOOTER_HEIGHT)
        text_y = self._y(self.height - 10)

        pdf.setStrokeColorRGB(*_rgb(COLOR_BORDER))
        pdf.setLineWidth(0.1 * mm)
        pdf.line(MARGIN_LEFT * mm, line_y, (width - MARGIN_RIGHT) * mm, line_y)

        pdf.setFillColorRGB(*_rgb(COLOR_FOOTER))
        pdf.setFont(self.font.font_name('normal'), FONT_SIZE_FOOTER)
        pdf.drawString(MARGIN_LEFT * mm, text_y, f"Exported: {export_date}")
        pdf.drawRightString((width - MARGIN_RIGHT) * mm, text_y, f"{number} / {total}")
