"""
Layout pass of the PDF engine.

Walks a conversation and produces draw commands per page, in millimetres
with a top-left origin and baseline-positioned text. Nothing here touches a
reportlab canvas; see ``render.py`` for the second pass.
"""

from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Callable, List, Optional, Tuple, Union
import json
import logging

from lyra.core.branches import build_branch_graph
from lyra.core.constants import (
    CODE_BORDER_WIDTH, CODE_LINE_NUMBER_WIDTH, CODE_PADDING, COLOR_ASSISTANT,
    COLOR_BORDER, COLOR_CODE_BG, COLOR_CODE_DIVIDER, COLOR_CODE_LABEL_BG,
    COLOR_CODE_TEXT, COLOR_HUMAN, COLOR_INLINE_CODE, COLOR_INLINE_CODE_BG,
    COLOR_ITALIC, COLOR_LINK, COLOR_MATH_BG, COLOR_MATH_BORDER, COLOR_MATH_LABEL,
    COLOR_MATH_LABEL_BG, COLOR_MATH_TEXT, COLOR_QUOTE, COLOR_RULE, COLOR_SECTION_BG,
    COLOR_TABLE_HEADER_BG, COLOR_TEXT, COLOR_TIMESTAMP, FONT_SIZE_BODY, FONT_SIZE_CODE,
    FONT_SIZE_HEADING1, FONT_SIZE_HEADING2, FONT_SIZE_SENDER, FONT_SIZE_TIMESTAMP,
    FONT_SIZE_TITLE, LINE_HEIGHT, LIST_BULLET_OFFSET, LIST_INDENT_PER_LEVEL,
    MARGIN_LEFT, MATH_BORDER_WIDTH, MESSAGE_SPACING, PREVIEW_LENGTH, QUOTE_INDENT,
    SECTION_SPACING, TABLE_CELL_PADDING, TABLE_ROW_FACTOR, TOC_ENTRY_FACTOR
)
from lyra.core.formatting import clean_preview
from lyra.core.models import Artifact, Conversation, Message, ToolCall
from lyra.pdf.fonts import FontProvider, StandardFontProvider
from lyra.pdf.latex import simplify_latex
from lyra.pdf.styles import PageGeometry, PdfOptions
from lyra.pdf.text import (
    BOLD, BOLD_ITALIC, CODE, HEADING, ITALIC, LINK, NORMAL, QUOTE, RULE, TABLE_ROW,
    Segment, clean_text, list_item, parse_inline, parse_table, replace_inline_math,
    split_blocks, strip_inline, wrap_segments, wrap_text
)

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]


# --- Draw commands ---

@dataclass
class TextRun:
    x: float
    y: float                 # baseline
    text: str
    font: str
    size: float              # points
    color: Color = COLOR_TEXT
    align: str = 'left'      # left, right


@dataclass
class Rect:
    x: float
    y: float                 # top edge
    width: float
    height: float
    fill: Optional[Color] = None
    stroke: Optional[Color] = None
    line_width: float = 0.3
    radius: float = 0.0


@dataclass
class Line:
    x1: float
    y1: float
    x2: float
    y2: float
    color: Color = COLOR_BORDER
    width: float = 0.3


@dataclass
class LinkArea:
    """Clickable area pointing at a named destination or an external URL"""
    x: float
    y: float
    width: float
    height: float
    destination: Optional[str] = None
    url: Optional[str] = None


Command = Union[TextRun, Rect, Line, LinkArea]


@dataclass
class Anchor:
    """Where a message starts; feeds the TOC, links and bookmarks"""
    index: int
    page: int
    y: float
    label: str
    preview: str
    is_human: bool

    @property
    def key(self) -> str:
        return f"msg_{self.index}"


@dataclass
class BlockSegment:
    """The part of a boxed block (code, math, section) that falls on one page"""
    kind: str
    page: int
    position: str            # single, first, middle, last
    top: float
    bottom: float
    first_line: Optional[int] = None
    last_line: Optional[int] = None


@dataclass
class LayoutResult:
    pages: List[List[Command]]
    anchors: List[Anchor]
    toc_pages: List[int]
    page_size: Tuple[float, float]
    title: str
    export_date: str
    segments: List[BlockSegment] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def texts(self, page: Optional[int] = None) -> List[str]:
        """Text of every run, optionally for one 1-based page"""
        pages = self.pages if page is None else [self.pages[page - 1]]
        return [cmd.text for commands in pages for cmd in commands if isinstance(cmd, TextRun)]


def segment_position(index: int, count: int) -> str:
    """Position of the ``index``-th page segment of a block split ``count`` ways"""
    if count == 1:
        return 'single'
    if index == 0:
        return 'first'
    if index == count - 1:
        return 'last'
    return 'middle'


class _Box:
    """
    Background and border of a block that may continue across pages.

    Backgrounds are inserted under the block's text once the block is done,
    when every page segment's extent is known.
    """

    def __init__(self, engine: 'LayoutEngine', kind: str, fill: Optional[Color],
                 border: Optional[Color] = None, border_width: float = CODE_BORDER_WIDTH,
                 divider_x: Optional[float] = None):
        self.engine = engine
        self.kind = kind
        self.fill = fill
        self.border = border
        self.border_width = border_width
        self.divider_x = divider_x
        self.parts: List[dict] = []

    def open(self, top: float):
        self.parts.append({
            'page': self.engine.page_number,
            'insert_at': len(self.engine.commands),
            'top': top,
            'bottom': top,
            'first_line': None,
            'last_line': None,
        })

    def mark_line(self, number: int):
        part = self.parts[-1]
        if part['first_line'] is None:
            part['first_line'] = number
        part['last_line'] = number

    def close(self, bottom: float):
        self.parts[-1]['bottom'] = bottom

    def finish(self):
        x = MARGIN_LEFT
        width = self.engine.page.content_width
        for i, part in enumerate(self.parts):
            position = segment_position(i, len(self.parts))
            top, bottom = part['top'], part['bottom']
            commands = self.engine.pages[part['page'] - 1]

            if self.fill is not None:
                commands.insert(part['insert_at'], Rect(x, top, width, bottom - top, fill=self.fill))

            if self.border is not None:
                if position == 'single':
                    commands.append(Rect(x, top, width, bottom - top, stroke=self.border,
                                         line_width=self.border_width, radius=1.5))
                else:
                    commands.append(Line(x, top, x, bottom, self.border, self.border_width))
                    commands.append(Line(x + width, top, x + width, bottom,
                                         self.border, self.border_width))
                    if position == 'first':
                        commands.append(Line(x, top, x + width, top, self.border, self.border_width))
                    if position == 'last':
                        commands.append(Line(x, bottom, x + width, bottom,
                                             self.border, self.border_width))

            if self.divider_x is not None:
                commands.append(Line(x + self.divider_x, top, x + self.divider_x, bottom,
                                     COLOR_CODE_DIVIDER, 0.2))

            self.engine.segments.append(BlockSegment(
                kind=self.kind, page=part['page'], position=position, top=top, bottom=bottom,
                first_line=part['first_line'], last_line=part['last_line'],
            ))


class LayoutEngine:
    """
    First pass: conversation in, positioned draw commands out.

    Document order is title, metadata, table of contents (when there is more
    than one message) and then the messages starting on a fresh page. The
    TOC's page count is computed up front so its pages sit before the
    content and every page number it prints is final.
    """

    def __init__(self, options: Optional[PdfOptions] = None,
                 font: Optional[FontProvider] = None):
        self.options = options or PdfOptions()
        self.font = font or StandardFontProvider()
        self.page = PageGeometry.for_format(self.options.page_format)
        self._reset()

    def _reset(self):
        self.pages: List[List[Command]] = [[]]
        self.y = self.page.top
        self.anchors: List[Anchor] = []
        self.segments: List[BlockSegment] = []

    # --- Cursor ---

    @property
    def page_number(self) -> int:
        return len(self.pages)

    @property
    def commands(self) -> List[Command]:
        return self.pages[-1]

    def new_page(self):
        self.pages.append([])
        self.y = self.page.top

    def check_page_break(self, height: float) -> bool:
        """Start a new page when ``height`` more millimetres would cross the bottom margin"""
        if self.y + height > self.page.bottom:
            self.new_page()
            return True
        return False

    def measure(self, text: str, size: float, style: str = NORMAL) -> float:
        return self.font.string_width(text, size, style)

    def _text(self, x: float, text: str, size: float, style: str = NORMAL,
              color: Color = COLOR_TEXT, y: Optional[float] = None, align: str = 'left'):
        if text:
            self.commands.append(TextRun(x, self.y if y is None else y, text,
                                         self.font.font_name(style), size, color, align))

    # --- Failure isolation ---

    def _snapshot(self) -> Tuple[int, int, float, int, int]:
        return (len(self.pages), len(self.commands), self.y,
                len(self.anchors), len(self.segments))

    def _restore(self, snapshot: Tuple[int, int, float, int, int]):
        pages, commands, y, anchors, segments = snapshot
        del self.pages[pages:]
        del self.pages[-1][commands:]
        self.y = y
        del self.anchors[anchors:]
        del self.segments[segments:]

    def _isolated(self, draw: Callable[[], None], fallback: str, what: str):
        """Run ``draw``; on any failure undo its output and lay out ``fallback`` as plain text"""
        snapshot = self._snapshot()
        try:
            draw()
        except Exception as e:
            logger.warning(f"Could not lay out {what}, using plain text instead: {e}")
            self._restore(snapshot)
            self._plain_text(fallback)

    # --- Document ---

    def layout(self, conversation: Conversation, messages: Optional[List[Message]] = None,
               title: Optional[str] = None) -> LayoutResult:
        """
        Lay out one conversation.

        ``messages`` defaults to every message, branch-annotated; ``title``
        overrides the conversation title (renames).

        Raises:
            FontNotReadyError: when the font provider is not ready
        """
        self.font.ensure_ready()
        self._reset()

        if messages is None:
            messages = list(build_branch_graph(conversation.messages,
                                               conversation.preferred_main).messages)

        export_date = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        doc_title = clean_text(title or conversation.title) or 'Conversation'

        self._title(doc_title)
        self._metadata(conversation, export_date)
        self.y += SECTION_SPACING

        toc_pages = []
        if len(messages) > 1:
            for _ in range(self.toc_page_count(len(messages))):
                self.new_page()
                toc_pages.append(self.page_number)
            self.new_page()

        for position, msg in enumerate(messages, 1):
            snapshot = self._snapshot()
            try:
                self._message(msg, position)
            except Exception as e:
                logger.warning(f"Could not lay out message {position}, using plain text instead: {e}")
                self._restore(snapshot)
                self._message_plain(msg, position)

        if toc_pages:
            self._toc(toc_pages)

        logger.debug(f"Laid out {len(messages)} messages on {self.page_number} pages")
        return LayoutResult(
            pages=self.pages,
            anchors=self.anchors,
            toc_pages=toc_pages,
            page_size=self.page.size,
            title=doc_title,
            export_date=export_date,
            segments=self.segments,
        )

    def _title(self, title: str):
        for line in wrap_text(title, self.page.content_width, FONT_SIZE_TITLE, self.measure):
            self.check_page_break(LINE_HEIGHT * 1.5)
            self._text(MARGIN_LEFT, line, FONT_SIZE_TITLE)
            self.y += LINE_HEIGHT * 1.5
        self.y += SECTION_SPACING

    def _metadata(self, conversation: Conversation, export_date: str):
        meta = conversation.metadata
        lines = []
        if meta.platform:
            lines.append(f"Platform: {meta.platform}")
        if meta.created_at:
            lines.append(f"Created: {meta.created_at}")
        if meta.updated_at:
            lines.append(f"Updated: {meta.updated_at}")
        lines.append(f"Exported: {export_date}")

        for line in lines:
            self.check_page_break(LINE_HEIGHT)
            self._text(MARGIN_LEFT, clean_text(line), FONT_SIZE_TIMESTAMP, color=COLOR_TIMESTAMP)
            self.y += LINE_HEIGHT

    # --- Table of contents ---

    def _toc_positions(self, count: int) -> List[Tuple[int, float]]:
        """(page offset, baseline) of each TOC entry"""
        entry_height = LINE_HEIGHT * TOC_ENTRY_FACTOR
        positions = []
        offset = 0
        y = self.page.top + LINE_HEIGHT * 3
        for _ in range(count):
            if y + entry_height > self.page.bottom:
                offset += 1
                y = self.page.top
            positions.append((offset, y))
            y += entry_height
        return positions

    def toc_page_count(self, count: int) -> int:
        """Pages the TOC needs for ``count`` messages"""
        positions = self._toc_positions(count)
        return positions[-1][0] + 1 if positions else 0

    def _toc(self, toc_pages: List[int]):
        first = self.pages[toc_pages[0] - 1]
        top = self.page.top
        first.append(TextRun(MARGIN_LEFT, top, 'Table of Contents',
                             self.font.font_name(BOLD), FONT_SIZE_HEADING1))
        first.append(Line(MARGIN_LEFT, top + LINE_HEIGHT * 2, self.page.right,
                          top + LINE_HEIGHT * 2, COLOR_BORDER, 0.3))

        for anchor, (offset, y) in zip(self.anchors, self._toc_positions(len(self.anchors))):
            commands = self.pages[toc_pages[offset] - 1]
            color = COLOR_HUMAN if anchor.is_human else COLOR_ASSISTANT
            page_label = f"p.{anchor.page}"

            commands.append(TextRun(MARGIN_LEFT + 5, y, anchor.label,
                                    self.font.font_name(NORMAL), FONT_SIZE_BODY, color))
            commands.append(TextRun(self.page.right, y, page_label,
                                    self.font.font_name(NORMAL), FONT_SIZE_BODY,
                                    COLOR_TIMESTAMP, align='right'))
            if anchor.preview:
                preview = self._truncate(anchor.preview, self.page.content_width - 10,
                                         FONT_SIZE_TIMESTAMP)
                commands.append(TextRun(MARGIN_LEFT + 10, y + LINE_HEIGHT, preview,
                                        self.font.font_name(NORMAL), FONT_SIZE_TIMESTAMP,
                                        COLOR_TIMESTAMP))
            commands.append(LinkArea(MARGIN_LEFT, y - 4, self.page.content_width,
                                     LINE_HEIGHT * 2, destination=anchor.key))

    # --- Messages ---

    @staticmethod
    def sender_line(msg: Message, position: int) -> str:
        """``n. Human|Assistant`` plus ``[Branch k]`` on branch points"""
        label = f"{position}. {'Human' if msg.is_human else 'Assistant'}"
        if msg.branch is not None and msg.branch.is_branch_point:
            label += f" [Branch {msg.branch.child_count}]"
        return label

    def _anchor(self, msg: Message, position: int) -> str:
        label = self.sender_line(msg, position)
        self.anchors.append(Anchor(
            index=position,
            page=self.page_number,
            y=self.y,
            label=label,
            preview=clean_preview(clean_text(msg.display_text), PREVIEW_LENGTH),
            is_human=msg.is_human,
        ))
        return label

    def _sender(self, msg: Message, position: int):
        self.check_page_break(FONT_SIZE_SENDER + MESSAGE_SPACING)
        label = self._anchor(msg, position)
        self._text(MARGIN_LEFT, label, FONT_SIZE_SENDER, BOLD,
                   COLOR_HUMAN if msg.is_human else COLOR_ASSISTANT)
        self.y += LINE_HEIGHT * 1.2

    def _message(self, msg: Message, position: int):
        options = self.options
        self._sender(msg, position)

        if options.include_timestamps and msg.timestamp:
            self._text(MARGIN_LEFT, msg.timestamp, FONT_SIZE_TIMESTAMP, color=COLOR_TIMESTAMP)
            self.y += LINE_HEIGHT

        if msg.thinking and options.include_thinking and not msg.is_human:
            self._isolated(partial(self._section, 'Thinking', msg.thinking),
                           msg.thinking, 'thinking')

        if msg.display_text:
            self._body(msg.display_text)

        if msg.attachments and msg.is_human:
            text = '\n'.join(f"[{i}] {att.file_name or 'file'} ({att.file_type or 'unknown'})"
                             for i, att in enumerate(msg.attachments, 1))
            self._isolated(partial(self._section, 'Attachments', text), text, 'attachments')

        if msg.artifacts and options.include_artifacts and not msg.is_human:
            for artifact in msg.artifacts:
                text = self.artifact_text(artifact)
                self._isolated(partial(self._section, f"Artifact: {artifact.title or 'Untitled'}", text),
                               text, 'artifact')

        if msg.tools and options.include_tools:
            for tool in msg.tools:
                text = self.tool_text(tool)
                self._isolated(partial(self._section, f"Tool: {tool.name or 'Unknown'}", text),
                               text, 'tool')

        if msg.citations and options.include_citations:
            lines = []
            for i, citation in enumerate(msg.citations, 1):
                lines.append(f"[{i}] {citation.title or citation.url or 'Unknown'}")
                if citation.title and citation.url:
                    lines.append(f"    {citation.url}")
            text = '\n'.join(lines)
            self._isolated(partial(self._section, 'Citations', text), text, 'citations')

        self.y += MESSAGE_SPACING

    def _message_plain(self, msg: Message, position: int):
        self._sender(msg, position)
        self._plain_text(msg.display_text)
        self.y += MESSAGE_SPACING

    @staticmethod
    def artifact_text(artifact: Artifact) -> str:
        if artifact.content:
            return artifact.content
        if artifact.old_str or artifact.new_str:
            return f"Old:\n{artifact.old_str or ''}\n\nNew:\n{artifact.new_str or ''}"
        return ''

    @staticmethod
    def tool_text(tool: ToolCall) -> str:
        parts = []
        if tool.query:
            parts.append(f"Query: {tool.query}")
        parts.append(f"Input: {json.dumps(tool.input, indent=2, ensure_ascii=False, default=str)}")
        if tool.result is not None:
            result = (tool.result if isinstance(tool.result, str)
                      else json.dumps(tool.result, indent=2, ensure_ascii=False, default=str))
            parts.append(f"Output: {result}")
        else:
            parts.append("Output: N/A")
        return '\n\n'.join(parts)

    # --- Body ---

    def _body(self, text: str):
        for block in split_blocks(clean_text(text)):
            if block.type == 'code':
                draw = partial(self._code_block, block.content, block.language)
            elif block.type == 'math':
                draw = partial(self._math_block, block.content)
            else:
                draw = partial(self._markdown, block.content)
            self._isolated(draw, block.content, f"{block.type} block")
        self.y += LINE_HEIGHT * 0.3

    def _markdown(self, text: str):
        lines = text.split('\n')
        previous_blank = True
        i = 0
        while i < len(lines):
            line = lines[i]
            blank = not line.strip()

            if blank:
                if not previous_blank:
                    self.y += LINE_HEIGHT * 0.6
            elif HEADING.match(line):
                self._heading(line)
            elif RULE.match(line):
                self._rule()
            elif QUOTE.match(line):
                self._quote(QUOTE.match(line).group(1))
            elif TABLE_ROW.match(line):
                table = [line]
                while i + 1 < len(lines) and TABLE_ROW.match(lines[i + 1]):
                    i += 1
                    table.append(lines[i])
                self._table(table)
            elif list_item(line):
                self._list_item(*list_item(line))
            else:
                self._inline(line, MARGIN_LEFT, self.page.content_width)

            previous_blank = blank
            i += 1

    def _heading(self, line: str):
        match = HEADING.match(line)
        level = len(match.group(1))
        size = {1: FONT_SIZE_HEADING1, 2: FONT_SIZE_HEADING2}.get(level, FONT_SIZE_SENDER)
        text = strip_inline(replace_inline_math(match.group(2)))

        self.y += LINE_HEIGHT * 0.3
        for part in wrap_text(text, self.page.content_width, size, self.measure, BOLD):
            self.check_page_break(LINE_HEIGHT * 1.2)
            self._text(MARGIN_LEFT, part, size, BOLD)
            self.y += LINE_HEIGHT * 1.2
        self.y += LINE_HEIGHT * 0.5

    def _rule(self):
        self.check_page_break(LINE_HEIGHT * 2)
        self.y += LINE_HEIGHT * 0.2
        self.commands.append(Line(MARGIN_LEFT, self.y - 1.5, self.page.right, self.y - 1.5,
                                  COLOR_RULE, 0.2))
        self.y += LINE_HEIGHT * 1.2

    def _quote(self, text: str):
        start_page = self.page_number
        start_y = self.y - 3.5
        self._inline(text, MARGIN_LEFT + QUOTE_INDENT,
                     self.page.content_width - QUOTE_INDENT - 2, color=COLOR_QUOTE)
        top = start_y if self.page_number == start_page else self.page.top - 3.5
        self.commands.append(Line(MARGIN_LEFT + 2, top, MARGIN_LEFT + 2,
                                  self.y - LINE_HEIGHT + 1.5, COLOR_QUOTE, 0.5))

    def _list_item(self, level: int, bullet: str, text: str):
        indent_x = MARGIN_LEFT + level * LIST_INDENT_PER_LEVEL
        bullet_width = self.measure(f"{bullet}  ", FONT_SIZE_BODY)
        self.check_page_break(LINE_HEIGHT)
        self._text(indent_x + LIST_BULLET_OFFSET, bullet, FONT_SIZE_BODY)
        text_x = indent_x + LIST_BULLET_OFFSET + bullet_width
        self._inline(text, text_x, self.page.right - text_x)

    def _inline(self, text: str, x: float, width: float, size: float = FONT_SIZE_BODY,
                color: Color = COLOR_TEXT):
        """Wrapped line of inline Markdown with math already flattened"""
        segments = parse_inline(replace_inline_math(text))
        for line in wrap_segments(segments, width, size, self.measure):
            self.check_page_break(LINE_HEIGHT)
            cursor = x
            for seg in line:
                run_width = self.measure(seg.text, size, seg.style)
                run_color = color
                if seg.style == CODE:
                    self.commands.append(Rect(cursor - 0.5, self.y - 3.2, run_width + 1, 4.2,
                                              fill=COLOR_INLINE_CODE_BG))
                    run_color = COLOR_INLINE_CODE
                elif seg.style == LINK:
                    run_color = COLOR_LINK
                    self.commands.append(LinkArea(cursor, self.y - 3.5, run_width, LINE_HEIGHT,
                                                  url=seg.url))
                elif seg.style in (ITALIC, BOLD_ITALIC) and color == COLOR_TEXT:
                    run_color = COLOR_ITALIC
                self._text(cursor, seg.text, size, seg.style, run_color)
                cursor += run_width
            self.y += LINE_HEIGHT

    def _plain_text(self, text: str, x: float = MARGIN_LEFT, width: Optional[float] = None,
                    size: float = FONT_SIZE_BODY):
        width = width or self.page.content_width
        for line in wrap_text(clean_text(text), width, size, self.measure):
            self.check_page_break(LINE_HEIGHT)
            self._text(x, line, size)
            self.y += LINE_HEIGHT

    def _truncate(self, text: str, width: float, size: float, style: str = NORMAL) -> str:
        if self.measure(text, size, style) <= width:
            return text
        while text and self.measure(text + '...', size, style) > width:
            text = text[:-1]
        return text + '...'

    # --- Boxed blocks ---

    def _label(self, text: str, color: Color, background: Color):
        label_width = self.measure(text, FONT_SIZE_TIMESTAMP) + 4
        self.commands.append(Rect(MARGIN_LEFT, self.y - 3, label_width, 5,
                                  fill=background, radius=1))
        self._text(MARGIN_LEFT + 2, text, FONT_SIZE_TIMESTAMP, color=color)
        self.y += LINE_HEIGHT * 1.2

    def _boxed_lines(self, box: _Box, rows: List[Tuple[Optional[int], str]], text_x: float,
                     size: float, style: str, color: Color):
        """Lay out rows inside ``box``, closing and reopening it at page breaks"""
        box.open(self.y - CODE_PADDING - 1)
        for number, text in rows:
            if self.y + LINE_HEIGHT > self.page.bottom:
                box.close(self.page.bottom)
                self.new_page()
                box.open(self.y - CODE_PADDING - 1)
            if number is not None:
                box.mark_line(number)
                self._text(MARGIN_LEFT + CODE_LINE_NUMBER_WIDTH - 1, str(number), size - 1,
                           color=COLOR_TIMESTAMP, align='right')
            self._text(text_x, text, size, style, color)
            self.y += LINE_HEIGHT
        box.close(self.y - LINE_HEIGHT + CODE_PADDING)
        box.finish()

    def _code_block(self, code: str, language: str = ''):
        """Bordered, line-numbered code; numbering continues across pages"""
        self.check_page_break(LINE_HEIGHT * 2 + CODE_PADDING * 2)
        if language:
            self._label(language.upper(), COLOR_QUOTE, COLOR_CODE_LABEL_BG)

        text_x = MARGIN_LEFT + CODE_LINE_NUMBER_WIDTH + 2
        code_width = self.page.content_width - CODE_LINE_NUMBER_WIDTH - CODE_PADDING * 2 - 2
        rows: List[Tuple[Optional[int], str]] = []
        for number, line in enumerate(code.split('\n'), 1):
            wrapped = wrap_text(line.expandtabs(4), code_width, FONT_SIZE_CODE,
                                self.measure, CODE) or ['']
            rows.append((number, wrapped[0]))
            rows.extend((None, part) for part in wrapped[1:])

        box = _Box(self, 'code', COLOR_CODE_BG, COLOR_BORDER, CODE_BORDER_WIDTH,
                   divider_x=CODE_LINE_NUMBER_WIDTH)
        self._boxed_lines(box, rows, text_x, FONT_SIZE_CODE, CODE, COLOR_CODE_TEXT)
        self.y += SECTION_SPACING

    def _math_block(self, latex: str):
        """Display math flattened to Unicode in a blue-bordered box"""
        self.check_page_break(LINE_HEIGHT * 2 + CODE_PADDING * 2)
        self._label('MATH', COLOR_MATH_LABEL, COLOR_MATH_LABEL_BG)
        lines = wrap_text(simplify_latex(latex), self.page.content_width - 8,
                          FONT_SIZE_BODY, self.measure)
        box = _Box(self, 'math', COLOR_MATH_BG, COLOR_MATH_BORDER, MATH_BORDER_WIDTH)
        self._boxed_lines(box, [(None, line) for line in lines], MARGIN_LEFT + 4,
                          FONT_SIZE_BODY, NORMAL, COLOR_MATH_TEXT)
        self.y += SECTION_SPACING

    def _section(self, title: str, content: str):
        """Shaded block with a heading: thinking, artifacts, tools, citations, attachments"""
        self.check_page_break(LINE_HEIGHT * 3)
        box = _Box(self, 'section', COLOR_SECTION_BG)
        box.open(self.y - 5)
        self._text(MARGIN_LEFT + 2, clean_text(title), FONT_SIZE_HEADING2, BOLD)
        self.y += LINE_HEIGHT * 1.4
        for line in wrap_text(clean_text(content), self.page.content_width - 4,
                              FONT_SIZE_BODY, self.measure):
            if self.y + LINE_HEIGHT > self.page.bottom:
                box.close(self.page.bottom)
                self.new_page()
                box.open(self.y - 4)
            self._text(MARGIN_LEFT + 2, line, FONT_SIZE_BODY)
            self.y += LINE_HEIGHT
        box.close(self.y - LINE_HEIGHT + 2.5)
        box.finish()
        self.y += SECTION_SPACING

    # --- Tables ---

    def _table(self, lines: List[str]):
        """Grid table; the header row is repeated after a page break"""
        rows = parse_table(lines)
        if not rows:
            return
        columns = max(len(row) for row in rows)
        cell_width = self.page.content_width / columns
        row_height = LINE_HEIGHT * TABLE_ROW_FACTOR
        header = rows[0]

        self.check_page_break(row_height * 2)
        for index, row in enumerate(rows):
            if index > 0 and self.y + row_height > self.page.bottom:
                self.new_page()
                self._text(MARGIN_LEFT, '(continued)', FONT_SIZE_TIMESTAMP, color=COLOR_TIMESTAMP)
                self.y += LINE_HEIGHT * 0.8
                self._table_row(header, True, cell_width, row_height)
            self._table_row(row, index == 0, cell_width, row_height)
        self.y += LINE_HEIGHT

    def _table_row(self, cells: List[str], is_header: bool, cell_width: float, row_height: float):
        top = self.y - 3.5
        style = BOLD if is_header else NORMAL
        color = COLOR_TEXT if is_header else COLOR_CODE_TEXT
        for column, cell in enumerate(cells):
            x = MARGIN_LEFT + column * cell_width
            if is_header:
                self.commands.append(Rect(x, top, cell_width, row_height, fill=COLOR_TABLE_HEADER_BG))
            self.commands.append(Rect(x, top, cell_width, row_height, stroke=COLOR_BORDER))
            text = self._truncate(cell, cell_width - TABLE_CELL_PADDING * 2, FONT_SIZE_BODY, style)
            self._text(x + TABLE_CELL_PADDING, text, FONT_SIZE_BODY, style, color,
                       y=top + row_height / 2 + 1.5)
        self.y += row_height
