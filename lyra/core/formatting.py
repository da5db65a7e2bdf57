"""
Shared formatting helpers: numbering, sender labels, file names, timestamps
and Rich tables for CLI output.
"""

from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple
import re

from rich.console import Console
from rich.table import Table

from .constants import BRANCH_HASH_MODULO, MAIN_BRANCH, MAX_FILENAME_LENGTH
from .models import Message
from .uuids import java_string_hash

TIMESTAMP_FORMATS = [
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%B %d, %Y %I:%M%p",  # SillyTavern send_date
]


# --- Numbering ---

def to_excel_column(num: int) -> str:
    """1 -> A, 26 -> Z, 27 -> AA"""
    result = ''
    while num > 0:
        num -= 1
        result = chr(65 + num % 26) + result
        num //= 26
    return result


def to_roman(num: int) -> str:
    """Roman numeral; values outside 1..3999 pass through as digits"""
    if num <= 0 or num >= 4000:
        return str(num)
    values = [1000, 900, 500, 400, 100, 90, 50, 40, 10, 9, 5, 4, 1]
    symbols = ['M', 'CM', 'D', 'CD', 'C', 'XC', 'L', 'XL', 'X', 'IX', 'V', 'IV', 'I']
    result = ''
    for value, symbol in zip(values, symbols):
        while num >= value:
            result += symbol
            num -= value
    return result


def format_number(index: int, style: str = 'numeric') -> str:
    """Numbering prefix such as ``3.``, ``C.`` or ``III.``; empty for 'none'"""
    if style == 'numeric':
        return f"{index}."
    if style == 'letter':
        return f"{to_excel_column(index)}."
    if style == 'roman':
        return f"{to_roman(index)}."
    return ''


# --- Labels ---

def sender_label(msg: Message, sender_format: str = 'default',
                 human_label: str = '', assistant_label: str = '') -> str:
    """
    Resolve the display label for a message sender.

    ``default`` gives User/AI, ``human-assistant`` gives Human/Assistant and
    ``custom`` uses the given pair. Anything else falls back to the label the
    source carried.
    """
    is_human = msg.is_human
    if sender_format == 'default':
        return 'User' if is_human else 'AI'
    if sender_format == 'human-assistant':
        return 'Human' if is_human else 'Assistant'
    if sender_format == 'custom' and human_label and assistant_label:
        return human_label if is_human else assistant_label
    return msg.sender_label or ('Human' if is_human else 'Assistant')


def branch_suffix(msg: Message) -> str:
    """Title suffix: a fork marker for branch points, depth for alternates"""
    if msg.is_branch_point:
        return ' 🔀'
    if msg.branch_level > 0:
        return f" ↳{msg.branch_level}"
    return ''


def branch_marker(branch_id: Optional[str]) -> str:
    """Compact file-name marker: ``M`` for main, ``Tnn`` otherwise (two digits, wrapping at 100)"""
    if not branch_id or branch_id == MAIN_BRANCH:
        return 'M'
    match = re.search(r'(\d+)$', branch_id)
    if match:
        return f"T{int(match.group(1)) % BRANCH_HASH_MODULO:02d}"
    return f"T{abs(java_string_hash(branch_id)) % BRANCH_HASH_MODULO:02d}"


def escape_xml(text: Any) -> str:
    if not text:
        return ''
    return (str(text)
            .replace('&', '&amp;')
            .replace('<', '&lt;')
            .replace('>', '&gt;')
            .replace('"', '&quot;')
            .replace("'", '&apos;'))


def clean_preview(text: str, length: int) -> str:
    """Single-line preview, ellipsized once it reaches ``length``"""
    flat = re.sub(r'\s*\n\s*', ' ', text or '').strip()
    if len(flat) >= length:
        return flat[:length] + '...'
    return flat


def extract_thinking_and_content(text: str) -> Tuple[str, str]:
    """
    Split roleplay-style tagged text into (thinking, content).

    ``<thinking>`` is lifted out; ``<content>`` wins as the body when present,
    otherwise stray thinking/content/guifan tags are stripped.
    """
    if not text:
        return '', ''

    thinking = ''
    content = text
    match = re.search(r'<thinking>([\s\S]*?)</thinking>', text)
    if match:
        thinking = match.group(1).strip()
        content = re.sub(r'<thinking>[\s\S]*?</thinking>', '', text, count=1).strip()

    body = re.search(r'<content>([\s\S]*?)</content>', content)
    if body:
        content = body.group(1).strip()
    else:
        content = re.sub(r'</?(?:thinking|content|guifan)>', '', content).strip()
    return thinking, content


def host_of(url: str) -> str:
    """Host part of a URL, or an empty string"""
    if '/' in url:
        parts = url.split('/')
        return parts[2] if len(parts) > 2 else ''
    return ''


# --- Timestamps and file names ---

def parse_timestamp(timestamp: Any) -> Optional[datetime]:
    """Parse timestamp from various formats"""
    if timestamp is None or timestamp == '':
        return None

    if isinstance(timestamp, datetime):
        return timestamp

    if isinstance(timestamp, (int, float)):
        try:
            # Handle milliseconds
            if timestamp > 1e10:
                timestamp = timestamp / 1000
            return datetime.fromtimestamp(timestamp)
        except (ValueError, OSError, OverflowError):
            return None

    if isinstance(timestamp, str):
        for fmt in TIMESTAMP_FORMATS:
            try:
                return datetime.strptime(timestamp.strip(), fmt)
            except (ValueError, TypeError):
                continue

    return None


def display_timestamp(timestamp: Any) -> str:
    """Normalize a timestamp to ``YYYY-MM-DD HH:MM:SS``; unparseable strings pass through"""
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return timestamp if isinstance(timestamp, str) else ''
    return parsed.strftime("%Y-%m-%d %H:%M:%S")


def filename_date(timestamp: Any = None) -> str:
    """``YYYYMMDD`` for a timestamp, today when missing or unparseable"""
    parsed = parse_timestamp(timestamp) or datetime.now()
    return parsed.strftime("%Y%m%d")


def safe_title(title: str) -> str:
    """Document title safe for file names (ASCII letters, digits and CJK kept)"""
    return re.sub(r'[^a-zA-Z0-9一-龥]', '_', title or 'conversation')


def document_filename(title: str, extension: str, timestamp: Any = None) -> str:
    """``{sanitized-title}_{YYYYMMDD}.{ext}``"""
    return f"{safe_title(title)}_{filename_date(timestamp)}.{extension}"


def sanitize_archive_name(name: str) -> str:
    """Archive-safe name: reserved characters and whitespace become underscores"""
    name = re.sub(r'[<>:"/\\|?*]', '_', name)
    name = re.sub(r'\s+', '_', name)
    return name[:MAX_FILENAME_LENGTH]


# --- Rich tables ---

def format_conversations_table(conversations: Sequence, stars: Optional[List[bool]] = None,
                               names: Optional[List[str]] = None,
                               console: Optional[Console] = None) -> None:
    """
    Print conversations as a Rich table.

    Args:
        conversations: Conversation objects
        stars: Effective star state per conversation (overlay applied)
        names: Effective display name per conversation (renames applied)
        console: Optional Console instance (creates new one if not provided)
    """
    if console is None:
        console = Console()

    table = Table(
        title=f"[bold cyan]{len(conversations)} conversation(s) found[/bold cyan]",
        show_header=True,
        header_style="bold magenta",
        border_style="cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("UUID", style="cyan", width=12)
    table.add_column("Title", style="white", width=50)
    table.add_column("Msgs", style="blue", width=6)
    table.add_column("Platform", style="blue", width=12)
    table.add_column("Updated", style="green", width=20)

    for i, conv in enumerate(conversations, 1):
        title = names[i - 1] if names else conv.title
        title = title or "Untitled"
        if len(title) > 47:
            title = title[:47] + "..."
        starred = stars[i - 1] if stars else conv.metadata.is_starred
        if starred:
            title = f"⭐ {title}"

        table.add_row(
            str(i),
            (conv.uuid or '-')[:12],
            title,
            str(len(conv.messages)),
            conv.metadata.platform,
            (conv.metadata.updated_at or "Unknown")[:19],
        )

    console.print(table)


def format_branches_table(options: List[dict], console: Optional[Console] = None) -> None:
    """Print branch options (id, marker, message count) as a Rich table."""
    if console is None:
        console = Console()

    table = Table(
        title=f"[bold cyan]{len(options)} branch(es)[/bold cyan]",
        show_header=True,
        header_style="bold magenta",
        border_style="cyan",
    )
    table.add_column("Branch", style="cyan")
    table.add_column("Marker", style="yellow", width=8)
    table.add_column("Msgs", style="blue", width=6)
    for option in options:
        table.add_row(option['id'], option['marker'], str(option['message_count']))

    console.print(table)
