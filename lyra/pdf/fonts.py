"""
Font providers for the PDF engine.

A provider answers two questions: is the font usable yet, and which
reportlab font name draws a given style. Layout refuses to start until
``is_ready()`` holds.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union
import io
import logging

from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont

from lyra.core.errors import FontNotReadyError

logger = logging.getLogger(__name__)

READY = 'ready'
LOADING = 'loading'
FAILED = 'failed'
NOT_REQUESTED = 'not_requested'

# Builtin Type 1 families and their style variants
STANDARD_FAMILIES: Dict[str, Dict[str, str]] = {
    'Helvetica': {
        'normal': 'Helvetica',
        'bold': 'Helvetica-Bold',
        'italic': 'Helvetica-Oblique',
        'bolditalic': 'Helvetica-BoldOblique',
    },
    'Times': {
        'normal': 'Times-Roman',
        'bold': 'Times-Bold',
        'italic': 'Times-Italic',
        'bolditalic': 'Times-BoldItalic',
    },
    'Courier': {
        'normal': 'Courier',
        'bold': 'Courier-Bold',
        'italic': 'Courier-Oblique',
        'bolditalic': 'Courier-BoldOblique',
    },
}

FontSource = Union[str, Path, bytes]


class FontProvider(ABC):
    """Readiness probe and style-to-font mapping"""

    state: str = NOT_REQUESTED
    progress: Optional[str] = None
    error: Optional[str] = None

    def is_ready(self) -> bool:
        return self.state == READY

    def ensure_ready(self) -> None:
        """Raise FontNotReadyError describing why the font cannot be used"""
        if self.is_ready():
            return
        if self.state == LOADING:
            raise FontNotReadyError(LOADING, self.progress)
        if self.state == FAILED:
            raise FontNotReadyError(FAILED, self.error)
        raise FontNotReadyError(NOT_REQUESTED)

    @abstractmethod
    def font_name(self, style: str = 'normal') -> str:
        """Registered reportlab font name for a text style"""
        pass

    def string_width(self, text: str, size: float, style: str = 'normal') -> float:
        """Width of ``text`` at ``size`` points, in millimetres"""
        return pdfmetrics.stringWidth(text, self.font_name(style), size) / mm


class StandardFontProvider(FontProvider):
    """One of the PDF builtin families; always ready, Latin-1 coverage only"""

    def __init__(self, family: str = 'Helvetica'):
        if family not in STANDARD_FAMILIES:
            raise ValueError(f"Unknown standard font family: {family}")
        self.family = family
        self.state = READY

    def font_name(self, style: str = 'normal') -> str:
        if style in ('code', 'mono'):
            return 'Courier'
        if style == 'link':
            style = 'normal'
        return STANDARD_FAMILIES[self.family].get(style, STANDARD_FAMILIES[self.family]['normal'])


class TTFFontProvider(FontProvider):
    """
    A TrueType font registered with reportlab, for scripts the builtin
    fonts cannot draw (CJK in particular).

    ``source`` is a file path or the font bytes. A bold face is optional;
    without one bold text uses the regular face.
    """

    def __init__(self, source: FontSource, name: str = 'LyraSans',
                 bold_source: Optional[FontSource] = None):
        self.source = source
        self.bold_source = bold_source
        self.name = name
        self.bold_name: Optional[str] = None
        self.state = NOT_REQUESTED

    @staticmethod
    def _open(source: FontSource):
        if isinstance(source, bytes):
            return io.BytesIO(source)
        return str(source)

    def load(self) -> bool:
        """Register the font(s); returns readiness and records failures"""
        self.state = LOADING
        try:
            pdfmetrics.registerFont(TTFont(self.name, self._open(self.source)))
            if self.bold_source is not None:
                bold_name = f"{self.name}-Bold"
                pdfmetrics.registerFont(TTFont(bold_name, self._open(self.bold_source)))
                self.bold_name = bold_name
        except Exception as e:
            # reportlab reports unreadable fonts with a mix of TTFError, OSError and struct errors
            self.state = FAILED
            self.error = str(e)
            logger.error(f"Failed to load PDF font {self.name}: {e}")
            return False

        self.state = READY
        logger.debug(f"Registered PDF font {self.name}")
        return True

    def font_name(self, style: str = 'normal') -> str:
        if style in ('bold', 'bolditalic') and self.bold_name:
            return self.bold_name
        return self.name


class ManualFontProvider(FontProvider):
    """
    Provider whose state is driven from outside, for hosts that fetch fonts
    themselves. Until it is ready it measures and draws with Helvetica.
    """

    def __init__(self, state: str = NOT_REQUESTED, progress: Optional[str] = None,
                 error: Optional[str] = None, font: Optional[FontProvider] = None):
        self.state = state
        self.progress = progress
        self.error = error
        self.font = font or StandardFontProvider()

    def set_loading(self, progress: Optional[str] = None) -> None:
        self.state = LOADING
        self.progress = progress

    def set_failed(self, error: str) -> None:
        self.state = FAILED
        self.error = error

    def set_ready(self, font: Optional[FontProvider] = None) -> None:
        if font is not None:
            self.font = font
        self.state = READY

    def font_name(self, style: str = 'normal') -> str:
        return self.font.font_name(style)


def provider_for(font_path: Optional[str] = None) -> FontProvider:
    """TrueType provider for ``font_path`` (loaded), otherwise Helvetica"""
    if not font_path:
        return StandardFontProvider()
    provider = TTFFontProvider(Path(font_path).expanduser())
    provider.load()
    return provider
