"""
Text preparation for the PDF layout pass: cleaning, block splitting, inline
Markdown runs and width-measured wrapping.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
import re
import unicodedata

from .latex import inline_math, simplify_latex

# Style names shared with FontProvider.font_name()
NORMAL = 'normal'
BOLD = 'bold'
ITALIC = 'italic'
BOLD_ITALIC = 'bolditalic'
CODE = 'code'
LINK = 'link'

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]')
_ZERO_WIDTH = re.compile(r'[\u200b-\u200f\u2060\ufeff]')
_PRIVATE_USE = re.compile(r'[\ue000-\uf8ff]')

_CODE_FENCE = re.compile(r'```([\w+#.-]*)[^\n]*\n([\s\S]*?)```')
_MATH_BLOCK = re.compile(r'\$\$([\s\S]*?)\$\$')
_INLINE_MATH = re.compile(r'(?<!\$)\$(?!\$)((?:\\.|[^$\\\n])+?)\$(?!\$)')

_INLINE = re.compile(
    r'`(?P<code>[^`]+)`'
    r'|\*\*\*(?P<bolditalic>.+?)\*\*\*'
    r'|___(?P<bolditalic2>.+?)___'
    r'|\*\*(?P<bold>.+?)\*\*'
    r'|__(?P<bold2>.+?)__'
    r'|\*(?P<italic>[^*\s](?:[^*]*?[^*\s])?)\*'
    r'|(?<!\w)_(?P<italic2>[^_\s](?:[^_]*?[^_\s])?)_(?!\w)'
    r'|\[(?P<label>[^\]]+)\]\((?P<url>[^)\s]+)\)'
)

HEADING = re.compile(r'^(#{1,6})\s+(.+)$')
RULE = re.compile(r'^\s*(?:---+|___+|\*\*\*+)\s*$')
QUOTE = re.compile(r'^>\s?(.*)$')
TABLE_ROW = re.compile(r'^\s*\|.*\|\s*$')
UNORDERED_ITEM = re.compile(r'^(\s*)([-*+])\s+(.+)$')
ORDERED_ITEM = re.compile(r'^(\s*)(\d+)[.)]\s+(.+)$')

BULLETS = ('•', '◦', '▪', '▫')


def clean_text(text: Optional[str]) -> str:
    """NFC-normalize and drop control, zero-width and private-use characters"""
    if not text or not isinstance(text, str):
        return ''
    cleaned = unicodedata.normalize('NFC', text)
    cleaned = _CONTROL_CHARS.sub('', cleaned)
    cleaned = _ZERO_WIDTH.sub('', cleaned)
    return _PRIVATE_USE.sub('', cleaned)


def replace_inline_math(text: str) -> str:
    """``$x^2$`` becomes ``⟨x²⟩``; unbalanced dollars are left alone"""
    return _INLINE_MATH.sub(lambda m: inline_math(m.group(1).strip()), text)


@dataclass
class Block:
    """A top-level piece of a message body"""
    type: str              # text, code, math
    content: str
    language: str = ''


def split_blocks(text: str) -> List[Block]:
    """
    Split a body into fenced code, ``$$`` math and plain Markdown blocks.

    Code fences win over math; an unterminated fence stays plain text.
    """
    text = text or ''
    spans: List[Tuple[int, int, Block]] = []

    for match in _CODE_FENCE.finditer(text):
        code = match.group(2)
        if code.endswith('\n'):
            code = code[:-1]
        spans.append((match.start(), match.end(), Block('code', code, match.group(1))))

    for match in _MATH_BLOCK.finditer(text):
        start, end = match.start(), match.end()
        if any(start < s_end and end > s_start for s_start, s_end, _ in spans):
            continue
        spans.append((start, end, Block('math', match.group(1).strip())))

    spans.sort(key=lambda span: span[0])

    blocks = []
    position = 0
    for start, end, block in spans:
        if start > position and text[position:start].strip():
            blocks.append(Block('text', text[position:start]))
        blocks.append(block)
        position = end
    if position < len(text) and text[position:].strip():
        blocks.append(Block('text', text[position:]))

    if not blocks:
        blocks.append(Block('text', text))
    return blocks


@dataclass
class Segment:
    """A styled run of inline text"""
    text: str
    style: str = NORMAL
    url: Optional[str] = None


def parse_inline(text: str) -> List[Segment]:
    """Inline Markdown (code, bold, italic, bold-italic, links) as styled runs"""
    segments = []
    position = 0
    for match in _INLINE.finditer(text):
        if match.start() > position:
            segments.append(Segment(text[position:match.start()]))

        groups = match.groupdict()
        if groups['code'] is not None:
            segments.append(Segment(groups['code'], CODE))
        elif groups['bolditalic'] is not None or groups['bolditalic2'] is not None:
            segments.append(Segment(groups['bolditalic'] or groups['bolditalic2'], BOLD_ITALIC))
        elif groups['bold'] is not None or groups['bold2'] is not None:
            segments.append(Segment(groups['bold'] or groups['bold2'], BOLD))
        elif groups['italic'] is not None or groups['italic2'] is not None:
            segments.append(Segment(groups['italic'] or groups['italic2'], ITALIC))
        else:
            segments.append(Segment(groups['label'], LINK, groups['url']))
        position = match.end()

    if position < len(text):
        segments.append(Segment(text[position:]))
    return segments


def strip_inline(text: str) -> str:
    """Inline Markdown reduced to its visible text"""
    return ''.join(seg.text for seg in parse_inline(text))


# Width of ``text`` at ``size`` points in ``style``, in millimetres
Measure = Callable[[str, float, str], float]


_WIDE = r'\u3000-\u9fff\uac00-\ud7af\uff00-\uffef'
_TOKEN = re.compile(rf'[{_WIDE}]|[^\s{_WIDE}]+\s*|\s+')


def _tokens(text: str) -> List[str]:
    """Words with their trailing spaces; CJK characters break individually"""
    return _TOKEN.findall(text)


def _split_long(token: str, width: float, size: float, style: str,
                measure: Measure) -> List[str]:
    pieces = []
    current = ''
    for ch in token:
        if current and measure(current + ch, size, style) > width:
            pieces.append(current)
            current = ch
        else:
            current += ch
    if current:
        pieces.append(current)
    return pieces


def wrap_segments(segments: List[Segment], width: float, size: float,
                  measure: Measure) -> List[List[Segment]]:
    """
    Greedy line breaking over styled runs.

    Returns lines of segments; adjacent tokens of the same style are merged
    so each line draws as few runs as possible. Words wider than a line are
    broken by character.
    """
    lines: List[List[Segment]] = [[]]
    line_width = 0.0
    continuation = False

    def new_line(wrapped: bool = True):
        nonlocal line_width, continuation
        lines.append([])
        line_width = 0.0
        continuation = wrapped

    def append(token: str, seg: Segment, token_width: float):
        nonlocal line_width
        current = lines[-1]
        if current and current[-1].style == seg.style and current[-1].url == seg.url:
            current[-1] = Segment(current[-1].text + token, seg.style, seg.url)
        else:
            current.append(Segment(token, seg.style, seg.url))
        line_width += token_width

    for seg in segments:
        for part_index, part in enumerate(seg.text.split('\n')):
            if part_index > 0:
                new_line(wrapped=False)
            for token in _tokens(part):
                token_width = measure(token, size, seg.style)
                if not token.strip():
                    # Whitespace never starts a wrapped line; indentation is kept
                    if (lines[-1] or not continuation) and line_width + token_width <= width:
                        append(token, seg, token_width)
                    continue
                if line_width + measure(token.rstrip(), size, seg.style) <= width:
                    append(token, seg, token_width)
                    continue
                if measure(token.rstrip(), size, seg.style) <= width:
                    new_line()
                    append(token, seg, token_width)
                    continue
                for piece in _split_long(token, width, size, seg.style, measure):
                    piece_width = measure(piece, size, seg.style)
                    if lines[-1] and line_width + piece_width > width:
                        new_line()
                    append(piece, seg, piece_width)

    for line in lines:
        if line:
            line[-1] = Segment(line[-1].text.rstrip(), line[-1].style, line[-1].url)
    return lines


def wrap_text(text: str, width: float, size: float, measure: Measure,
              style: str = NORMAL) -> List[str]:
    """Plain text wrapped to ``width`` millimetres; explicit newlines are kept"""
    lines = wrap_segments([Segment(text or '', style)], width, size, measure)
    return [''.join(seg.text for seg in line) for line in lines]


def parse_table(lines: List[str]) -> List[List[str]]:
    """
    Rows of cell texts; the ``|---|:--:|`` separator row is dropped and
    cells have inline Markdown and math flattened.
    """
    rows = []
    for line in lines:
        cells = [cell.strip() for cell in line.strip().strip('|').split('|')]
        if cells and all(re.fullmatch(r'\s*:?-+:?\s*', cell) for cell in cells):
            continue
        rows.append([
            strip_inline(re.sub(r'\$([^$]+)\$', lambda m: simplify_latex(m.group(1)), cell))
            for cell in cells
        ])
    return rows


def list_item(line: str) -> Optional[Tuple[int, str, str]]:
    """``(indent_level, bullet, text)`` for a list line, None otherwise"""
    match = UNORDERED_ITEM.match(line)
    if match:
        level = len(match.group(1).expandtabs(2)) // 2
        return level, BULLETS[level % len(BULLETS)], match.group(3)
    match = ORDERED_ITEM.match(line)
    if match:
        level = len(match.group(1).expandtabs(2)) // 2
        return level, f"{match.group(2)}.", match.group(3)
    return None
