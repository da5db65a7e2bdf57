"""
Exception hierarchy for Lyra
"""

from typing import Optional


class LyraError(Exception):
    """Base class for all Lyra errors"""


class UnsupportedFormatError(LyraError, ValueError):
    """Input data does not match any known export format"""


class ElementNotAvailableError(LyraError, LookupError):
    """A requested message element (thinking, artifact, ...) does not exist"""


class ExportCancelled(LyraError):
    """A long-running export was cancelled through its token"""


class EmptyExportError(LyraError, ValueError):
    """Nothing to export"""


class FontNotReadyError(LyraError, RuntimeError):
    """
    Raised before any page is drawn when the PDF font is unavailable.

    ``state`` is one of ``loading``, ``failed`` or ``not_requested``.
    """

    def __init__(self, state: str, detail: Optional[str] = None):
        self.state = state
        self.detail = detail
        super().__init__(self._describe(state, detail))

    @staticmethod
    def _describe(state: str, detail: Optional[str]) -> str:
        if state == 'loading':
            progress = f" ({detail})" if detail else ""
            return f"PDF font is still downloading{progress}; try again when it finishes"
        if state == 'failed':
            reason = f": {detail}" if detail else ""
            return f"PDF font failed to load{reason}"
        return "PDF font was never requested; load a font before exporting to PDF"
