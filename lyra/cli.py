#!/usr/bin/env python3
"""
Lyra CLI: inspect chat exports, manage overlay state and export documents
"""

import argparse
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional
import logging

from rich.console import Console

from lyra.core.branches import build_branch_graph
from lyra.core.config import get_config
from lyra.core.constants import MARK_TYPES, ROOT_UUID
from lyra.core.database import SQLOverlayStore
from lyra.core.errors import LyraError
from lyra.core.formatting import (
    clean_preview, format_branches_table, format_conversations_table, sender_label
)
from lyra.core.history import branch_point_choices, list_branch_options, select_linear_history
from lyra.core.models import Conversation, Project
from lyra.core.overlays import MarkManager, RenameManager, StarManager
from lyra.core.plugin import registry
from lyra.core.uuids import conversation_card_uuid
from lyra.integrations.exporters.granular import CancellationToken

logger = logging.getLogger(__name__)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# --- Helpers ---

def load_conversations(path: str, format: Optional[str] = None) -> List[Conversation]:
    if not Path(path).exists():
        raise FileNotFoundError(f"File not found: {path}")
    conversations = registry.import_file(path, format=format)
    if not conversations:
        raise LyraError(f"No conversations found in {path}")
    return conversations


def pick_conversation(conversations: List[Conversation],
                      conversation_uuid: Optional[str]) -> Conversation:
    """Conversation by uuid (or uuid prefix); the first one when none is given"""
    if not conversation_uuid:
        return conversations[0]
    for conv in conversations:
        if conv.uuid == conversation_uuid:
            return conv
    matches = [c for c in conversations if c.uuid.startswith(conversation_uuid)]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise LyraError(f"Ambiguous conversation prefix: {conversation_uuid}")
    raise LyraError(f"Conversation not found: {conversation_uuid}")


def open_store(db_path: Optional[str]) -> SQLOverlayStore:
    path = Path(db_path).expanduser() if db_path else get_config().overlay_db_path()
    return SQLOverlayStore(path)


def card_uuid(path: str, conversation: Conversation) -> str:
    """Overlay key of a conversation loaded from ``path``"""
    stat = os.stat(path)
    return conversation_card_uuid(Path(path).name, stat.st_size, int(stat.st_mtime * 1000),
                                  conversation.uuid)


def parse_selection(pairs: Optional[List[str]]) -> dict:
    selection = {}
    for pair in pairs or []:
        point, sep, branch = pair.partition('=')
        if not sep or not point or not branch:
            raise ValueError(f"Invalid branch selection '{pair}', expected BRANCH_POINT=BRANCH_ID")
        selection[ROOT_UUID if point == 'root' else point] = branch
    return selection


# --- Commands ---

def cmd_info(args):
    """List the conversations in a file with overlay stars and renames applied"""
    conversations = load_conversations(args.input, args.format)
    stars = names = None
    if args.db:
        store = open_store(args.db)
        star_manager = StarManager(store, enabled=get_config().get('overlays.stars_enabled', True))
        renames = RenameManager(store)
        stars = [star_manager.is_starred(c.uuid, c.metadata.is_starred) for c in conversations]
        names = [renames.get_name(c.uuid, c.title) for c in conversations]
    format_conversations_table(conversations, stars=stars, names=names, console=console)
    return 0


def cmd_branches(args):
    """Show branches and branch points of one conversation"""
    conv = pick_conversation(load_conversations(args.input, args.format), args.conversation)
    graph = build_branch_graph(conv.messages, conv.preferred_main)

    format_branches_table(list_branch_options(graph), console=console)

    points = graph.branch_points
    if not points:
        console.print("[dim]No branch points[/dim]")
        return 0

    console.print(f"\n[bold]Branch points ({len(points)})[/bold]")
    for point in points:
        label = 'root' if point == ROOT_UUID else point
        console.print(f"[cyan]{label}[/cyan]")
        for choice in branch_point_choices(graph, point):
            main = " [green](main)[/green]" if choice['is_main'] else ""
            console.print(f"  {choice['branch_id']}{main}: {choice['preview']}")
    for warning in graph.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    return 0


def cmd_history(args):
    """Print the linear transcript for a branch selection"""
    conv = pick_conversation(load_conversations(args.input, args.format), args.conversation)
    graph = build_branch_graph(conv.messages, conv.preferred_main)
    messages = select_linear_history(graph, parse_selection(args.select),
                                     show_all_branches=args.all)

    console.print(f"[bold cyan]{conv.title}[/bold cyan] ({len(messages)} messages)\n")
    for position, msg in enumerate(messages, 1):
        color = 'blue' if msg.is_human else 'magenta'
        branch = f" [dim]\\[{msg.branch_id}][/dim]" if msg.branch_id != 'main' else ""
        console.print(f"[{color}]{position}. {sender_label(msg)}[/{color}]{branch}")
        text = msg.display_text if args.full else clean_preview(msg.display_text, args.width)
        console.print(text, markup=False)
        console.print()
    return 0


def cmd_export(args):
    """Export conversations to markdown, pdf or granular zip"""
    registry.discover_plugins()
    exporter = registry.get_exporter(args.format_out)
    if not exporter:
        print(f"Error: Unknown export format: {args.format_out}")
        print(f"Available: {', '.join(registry.list_exporters())}")
        return 1

    if args.project:
        if args.format_out != 'granular':
            raise ValueError("--project requires --format granular")
        return export_project(args, exporter)

    conversations = load_conversations(args.input, args.format)
    if args.conversation:
        conversations = [pick_conversation(conversations, args.conversation)]

    kwargs = {}
    store = open_store(args.marks_db) if args.marks_db else None

    if args.format_out == 'markdown':
        from lyra.integrations.exporters.markdown import MarkdownOptions
        kwargs['options'] = MarkdownOptions.from_config(numbering=args.numbering)
        if store is not None:
            kwargs['marks'] = {c.uuid: MarkManager(store, card_uuid(args.input, c)).get_marks()
                               for c in conversations}
    elif args.format_out == 'pdf':
        from lyra.pdf.styles import PdfOptions
        kwargs['options'] = PdfOptions.from_config(font_path=args.font, page_format=args.page)

    if store is not None and len(conversations) == 1:
        kwargs['title'] = RenameManager(store).get_name(conversations[0].uuid,
                                                        conversations[0].title)

    output = args.output
    if not output:
        output = (exporter.suggest_filename(conversations[0]) if len(conversations) == 1
                  else get_config().get('export.output_dir', '.') + os.sep)

    exporter.export_to_file(conversations, output, **kwargs)
    print(f"Exported {len(conversations)} conversation(s) to {output}")
    return 0


def pick_project(projects: List[Project], key: str) -> Project:
    """Project by uuid, uuid prefix or case-insensitive name"""
    for project in projects:
        if project.uuid == key:
            return project
    matches = [p for p in projects
               if p.uuid.startswith(key) or p.name.lower() == key.lower()]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise LyraError(f"Ambiguous project: {key}")
    raise LyraError(f"Project not found: {key}")


def export_project(args, exporter) -> int:
    """Package one project of a full Claude export; Ctrl-C cancels between conversations"""
    importer = registry.get_importer('claude')
    if not Path(args.input).exists():
        raise FileNotFoundError(f"File not found: {args.input}")
    data = registry.load_file(args.input)
    if not importer or not importer.validate(data):
        raise LyraError(f"{args.input} is not a Claude account export")
    project = pick_project(importer.group_projects(data), args.project)

    token = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())
    try:
        file_name, payload = exporter.export_project(project, cancel_token=token)
    finally:
        signal.signal(signal.SIGINT, previous)

    output = Path(args.output) if args.output else Path(file_name)
    if output.is_dir() or (args.output and args.output.endswith(os.sep)):
        output = output / file_name
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(payload)
    print(f"Exported project {project.name} "
          f"({len(project.conversations)} conversation(s)) to {output}")
    return 0


def cmd_mark(args):
    """Toggle a completed/important/deleted mark on one message"""
    conv = pick_conversation(load_conversations(args.input, args.format), args.conversation)
    if not any(m.index == args.index for m in conv.messages):
        raise LyraError(f"Message index out of range: {args.index}")
    marks = MarkManager(open_store(args.db), card_uuid(args.input, conv))
    state = marks.toggle(args.index, args.type)
    print(f"Message {args.index}: {args.type} {'on' if state else 'off'}")
    return 0


def cmd_marks(args):
    """Show or clear marks of one conversation"""
    conv = pick_conversation(load_conversations(args.input, args.format), args.conversation)
    marks = MarkManager(open_store(args.db), card_uuid(args.input, conv))
    if args.clear:
        if args.type:
            marks.clear_type(args.type)
        else:
            marks.clear_all()
        print("Marks cleared")
        return 0

    current = marks.get_marks()
    for mark_type in MARK_TYPES:
        indexes = ', '.join(str(i) for i in sorted(current[mark_type])) or '-'
        print(f"{mark_type:10} {indexes}")
    return 0


def cmd_star(args):
    """Toggle the star of a conversation"""
    conv = pick_conversation(load_conversations(args.input, args.format), args.conversation_uuid)
    stars = StarManager(open_store(args.db), enabled=get_config().get('overlays.stars_enabled', True))
    state = stars.toggle(conv.uuid, conv.metadata.is_starred)
    print(f"{conv.title}: {'starred' if state else 'not starred'}")
    return 0


def cmd_rename(args):
    """Rename a conversation; an empty name restores the original"""
    conv = pick_conversation(load_conversations(args.input, args.format), args.conversation_uuid)
    renames = RenameManager(open_store(args.db))
    renames.rename(conv.uuid, args.name)
    print(f"{conv.uuid}: {renames.get_name(conv.uuid, conv.title)}")
    return 0


def cmd_plugins(args):
    """List available plugins"""
    registry.discover_plugins()

    print("Available importers:")
    for name in registry.list_importers():
        importer = registry.get_importer(name)
        print(f"  {name:20} - {importer.description}")

    print("\nAvailable exporters:")
    for name in registry.list_exporters():
        exporter = registry.get_exporter(name)
        print(f"  {name:20} - {exporter.description}")
    return 0


COMMANDS = {
    'info': cmd_info,
    'branches': cmd_branches,
    'history': cmd_history,
    'export': cmd_export,
    'mark': cmd_mark,
    'marks': cmd_marks,
    'star': cmd_star,
    'rename': cmd_rename,
    'plugins': cmd_plugins,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Lyra - browse and export Claude, ChatGPT, Gemini and JSONL chat histories'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    def file_command(name: str, help: str, format_flag: str = '--format') -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help)
        sub.add_argument('input', help='Chat export file (JSON or JSONL)')
        sub.add_argument(format_flag, dest='format',
                         help='Input format (auto-detect if not specified)')
        return sub

    info_parser = file_command('info', 'List conversations in a file')
    info_parser.add_argument('--db', help='Overlay database for stars and renames')

    branches_parser = file_command('branches', 'Show branches and branch points')
    branches_parser.add_argument('--conversation', '-c', help='Conversation uuid or prefix')

    history_parser = file_command('history', 'Print the linear history of a conversation')
    history_parser.add_argument('--conversation', '-c', help='Conversation uuid or prefix')
    history_parser.add_argument('--select', '-s', action='append', metavar='POINT=BRANCH',
                                help='Follow BRANCH at branch point POINT (uuid or "root"); repeatable')
    history_parser.add_argument('--all', action='store_true', help='Show every branch')
    history_parser.add_argument('--full', action='store_true', help='Print full message text')
    history_parser.add_argument('--width', type=int, default=200,
                                help='Preview length when not --full (default: 200)')

    export_parser = file_command('export', 'Export conversations', format_flag='--input-format')
    export_parser.add_argument('--format', '-f', dest='format_out',
                               default=get_config().get('export.default_format', 'markdown'),
                               choices=['markdown', 'pdf', 'granular'],
                               help='Export format (default from config: markdown)')
    export_parser.add_argument('--output', '-o', help='Output file or directory')
    export_parser.add_argument('--conversation', '-c', help='Export only this conversation')
    export_parser.add_argument('--project', '-p',
                               help='Granular only: package a Claude project (uuid, prefix or name)')
    export_parser.add_argument('--font', help='TrueType font for PDF export (CJK text needs one)')
    export_parser.add_argument('--page', choices=['a3', 'a4', 'letter', 'supernote'],
                               help='PDF page format')
    export_parser.add_argument('--numbering', choices=['none', 'numeric', 'letter', 'roman'],
                               help='Markdown message numbering')
    export_parser.add_argument('--marks-db', help='Overlay database; marks filter Markdown output')

    mark_parser = file_command('mark', 'Toggle a mark on a message')
    mark_parser.add_argument('index', type=int, help='Message index')
    mark_parser.add_argument('--type', required=True, choices=list(MARK_TYPES), help='Mark type')
    mark_parser.add_argument('--conversation', '-c', help='Conversation uuid or prefix')
    mark_parser.add_argument('--db', help='Overlay database (default from config)')

    marks_parser = file_command('marks', 'Show or clear message marks')
    marks_parser.add_argument('--conversation', '-c', help='Conversation uuid or prefix')
    marks_parser.add_argument('--clear', action='store_true', help='Clear marks')
    marks_parser.add_argument('--type', choices=list(MARK_TYPES), help='Only clear this mark type')
    marks_parser.add_argument('--db', help='Overlay database (default from config)')

    star_parser = file_command('star', 'Toggle the star of a conversation')
    star_parser.add_argument('conversation_uuid', help='Conversation uuid or prefix')
    star_parser.add_argument('--db', help='Overlay database (default from config)')

    rename_parser = file_command('rename', 'Rename a conversation')
    rename_parser.add_argument('conversation_uuid', help='Conversation uuid or prefix')
    rename_parser.add_argument('name', help='New name (empty restores the original)')
    rename_parser.add_argument('--db', help='Overlay database (default from config)')

    subparsers.add_parser('plugins', help='List available plugins')
    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return COMMANDS[args.command](args)
    except (LyraError, ValueError, OSError) as e:
        print(f"Error: {e}")
        if args.verbose:
            logger.exception("Command failed")
        return 1


if __name__ == '__main__':
    sys.exit(main())
