"""
PDF pagination engine: a layout pass producing draw commands and a
reportlab render pass turning them into bytes.
"""

from .fonts import (
    FontProvider,
    ManualFontProvider,
    StandardFontProvider,
    TTFFontProvider,
    provider_for,
)
from .layout import LayoutEngine, LayoutResult
from .render import PdfRenderer
from .styles import PageGeometry, PdfOptions

__all__ = [
    'FontProvider',
    'ManualFontProvider',
    'StandardFontProvider',
    'TTFFontProvider',
    'provider_for',
    'LayoutEngine',
    'LayoutResult',
    'PdfRenderer',
    'PageGeometry',
    'PdfOptions',
]
