"""
Content-derived keys for overlay state.

Overlays (marks, sort order) are keyed by a hash of the source file's name,
size and modification time, optionally combined with a conversation uuid, so
they survive reloading the same file.
"""

from typing import Optional, Tuple

_BASE36 = '0123456789abcdefghijklmnopqrstuvwxyz'


def java_string_hash(text: str) -> int:
    """32-bit signed ``h = h * 31 + c`` string hash"""
    h = 0
    for ch in text:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def to_base36(value: int) -> str:
    if value == 0:
        return '0'
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return ''.join(reversed(digits))


def file_hash(name: str, size: int, last_modified) -> str:
    """Stable short hash for a loaded file"""
    return to_base36(abs(java_string_hash(f"{name}_{size}_{last_modified}")))


def file_card_uuid(name: str, size: int, last_modified) -> str:
    return f"file-{file_hash(name, size, last_modified)}"


def conversation_card_uuid(name: str, size: int, last_modified,
                           conversation_uuid: str) -> str:
    return f"{file_hash(name, size, last_modified)}-{conversation_uuid}"


def parse_uuid(card_uuid: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Split a card uuid into ``(file_hash, conversation_uuid)``.

    File cards yield ``(hash, None)``; unparseable input yields ``(None, None)``.
    """
    if not card_uuid:
        return None, None
    if card_uuid.startswith('file-'):
        return card_uuid[len('file-'):], None
    if '-' in card_uuid:
        file_part, conversation_uuid = card_uuid.split('-', 1)
        return file_part, conversation_uuid
    return None, None
