"""
PDF options and page geometry
"""

from dataclasses import dataclass, fields
from typing import Optional, Tuple

from lyra.core.config import get_config
from lyra.core.constants import (
    MARGIN_BOTTOM, MARGIN_LEFT, MARGIN_RIGHT, MARGIN_TOP, PAGE_FORMATS
)


@dataclass
class PdfOptions:
    """Which message parts to draw and on what paper"""
    page_format: str = 'a4'            # a3, a4, letter, supernote
    include_thinking: bool = True
    include_artifacts: bool = True
    include_timestamps: bool = False
    include_tools: bool = True
    include_citations: bool = True
    font_path: Optional[str] = None

    @classmethod
    def from_config(cls, config=None, **overrides) -> 'PdfOptions':
        """Options from the ``pdf`` config section, then explicit overrides"""
        section = (config or get_config()).section('pdf')
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in section.items() if k in known}
        values.update({k: v for k, v in overrides.items() if k in known and v is not None})
        return cls(**values)


@dataclass(frozen=True)
class PageGeometry:
    """Page size and margins in millimetres"""
    width: float
    height: float

    @classmethod
    def for_format(cls, page_format: str) -> 'PageGeometry':
        width, height = PAGE_FORMATS.get((page_format or 'a4').lower(), PAGE_FORMATS['a4'])
        return cls(width, height)

    @property
    def size(self) -> Tuple[float, float]:
        return self.width, self.height

    @property
    def content_width(self) -> float:
        return self.width - MARGIN_LEFT - MARGIN_RIGHT

    @property
    def right(self) -> float:
        return self.width - MARGIN_RIGHT

    @property
    def top(self) -> float:
        return MARGIN_TOP

    @property
    def bottom(self) -> float:
        """Lowest baseline content may use"""
        return self.height - MARGIN_BOTTOM
