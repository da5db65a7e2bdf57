"""
Global constants for Lyra.

Centralizes magic numbers used across the branch builder, the exporters
and PDF page layout. Import from here instead of hardcoding values.
"""

# --- Branch Graph ---

ROOT_UUID = '00000000-0000-4000-8000-000000000000'  # Virtual root shared by first-turn siblings
MAIN_BRANCH = 'main'
ROOT_BRANCH_PREFIX = 'branch_root_'  # Branch id prefix for extra roots

# --- Overlay Store Keys ---

MARKS_PREFIX = 'marks_'
SORT_ORDER_PREFIX = 'message_order_'
STARS_KEY = 'starred_conversations_v1'
RENAMES_KEY = 'conversation_renames'
MARK_TYPES = ('completed', 'important', 'deleted')

# --- Format Detection ---

# Importers are tried in this order during auto-detection
IMPORTER_PRIORITY = ('jsonl_chat', 'gemini_notebooklm', 'claude', 'chatgpt')

# --- Granular Export ---

AUTHOR_USER = 'USER'
AUTHOR_AI = 'IA'
ELEMENT_MESSAGE = 'message'
ELEMENT_THINKING = 'thinking'
ELEMENT_ARTIFACT = 'artefato'
ELEMENT_TOOL = 'tool'
ELEMENT_CITATION = 'citation'
ELEMENT_ATTACHMENT = 'anexo'
ELEMENT_IMAGE = 'imagem'
MAX_FILENAME_LENGTH = 100    # Sanitized archive name length
BRANCH_HASH_MODULO = 100     # Fallback branch number range

# --- Display ---

PREVIEW_LENGTH = 50          # Characters of message text shown in TOC/anchors
WEB_SEARCH_RESULTS_SHOWN = 5  # Web search results listed in Markdown tool blocks

# --- PDF Page Model (millimetres) ---

PAGE_FORMATS = {
    'a3': (297.0, 420.0),
    'a4': (210.0, 297.0),
    'letter': (215.9, 279.4),
    'supernote': (163.0, 217.0),
}
MARGIN_LEFT = 15
MARGIN_RIGHT = 15
MARGIN_TOP = 15
MARGIN_BOTTOM = 25
LINE_HEIGHT = 5
SECTION_SPACING = 8
MESSAGE_SPACING = 10
FOOTER_HEIGHT = 15

# --- PDF Font Sizes (points) ---

FONT_SIZE_TITLE = 20
FONT_SIZE_HEADING1 = 16
FONT_SIZE_HEADING2 = 14
FONT_SIZE_SENDER = 12
FONT_SIZE_BODY = 10
FONT_SIZE_CODE = 9
FONT_SIZE_TIMESTAMP = 8
FONT_SIZE_FOOTER = 8

# --- PDF Colors (RGB 0-255) ---

COLOR_HUMAN = (0, 102, 204)
COLOR_ASSISTANT = (102, 102, 102)
COLOR_TIMESTAMP = (150, 150, 150)
COLOR_SECTION_BG = (250, 250, 250)
COLOR_FOOTER = (150, 150, 150)
COLOR_BORDER = (200, 200, 200)
COLOR_TEXT = (0, 0, 0)
COLOR_QUOTE = (100, 100, 100)
COLOR_RULE = (230, 230, 230)
COLOR_INLINE_CODE = (220, 50, 50)
COLOR_INLINE_CODE_BG = (245, 245, 245)
COLOR_LINK = (0, 102, 204)
COLOR_ITALIC = (70, 130, 180)
COLOR_CODE_TEXT = (50, 50, 50)
COLOR_CODE_BG = (248, 248, 248)
COLOR_CODE_LABEL_BG = (220, 220, 220)
COLOR_CODE_DIVIDER = (220, 220, 220)
COLOR_MATH_LABEL = (70, 130, 180)
COLOR_MATH_LABEL_BG = (230, 240, 250)
COLOR_MATH_TEXT = (30, 60, 120)
COLOR_MATH_BG = (245, 250, 255)
COLOR_MATH_BORDER = (180, 210, 240)
COLOR_TABLE_HEADER_BG = (245, 245, 245)

# --- PDF Block Geometry ---

LIST_INDENT_PER_LEVEL = 8
LIST_BULLET_OFFSET = 2
QUOTE_INDENT = 6
TABLE_CELL_PADDING = 3
TABLE_ROW_FACTOR = 1.8       # Table row height as a multiple of LINE_HEIGHT
CODE_LINE_NUMBER_WIDTH = 8
CODE_PADDING = 3
CODE_BORDER_WIDTH = 0.3
MATH_BORDER_WIDTH = 0.4
TOC_ENTRY_FACTOR = 2.5       # Entry line + preview line + trailing gap, in LINE_HEIGHTs
