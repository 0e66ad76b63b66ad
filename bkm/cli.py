#!/usr/bin/env python3
"""
BKM - Bookmark Metadata Keeper

Command-line front end over BkManager: tag bookmarks, count clicks, and
move cloud snapshots in and out of the local collection.
"""
import sys
import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from bkm.cloud import load_cloud_file, save_cloud_file
from bkm.config import BkmConfig, init_config, get_config
from bkm.data_holder import BkDataHolder
from bkm.db import Database
from bkm.entities import Bk
from bkm.importers import load_chrome_bookmarks
from bkm.manager import BkManager

logger = logging.getLogger(__name__)


console = Console()


def open_manager(config: BkmConfig) -> BkManager:
    """Build a manager wired to the configured database."""
    if config.database_url:
        database = Database(url=config.database_url, echo=config.database_echo)
    else:
        database = Database(path=str(config.get_database_path()), echo=config.database_echo)

    holder = BkDataHolder(
        database,
        maxsize=config.queue_maxsize,
        batch_saves=config.batch_saves,
        stop_timeout=config.stop_timeout,
    )
    return BkManager(holder)


def run_with_manager(operation: Callable[[BkManager], Awaitable[Any]]) -> Any:
    """Start a manager, run one operation against it, and shut it down."""
    async def runner():
        manager = open_manager(get_config())
        await manager.init()
        try:
            return await operation(manager)
        finally:
            await manager.close()

    return asyncio.run(runner())


def output_bookmarks(bookmarks: List[Bk], format: str = "table"):
    """Output bookmarks in the specified format."""
    if format == "json":
        print(json.dumps([bk.to_dict() for bk in bookmarks], indent=2))
    elif format == "plain":
        for bk in bookmarks:
            tags = " ".join(f"#{t}" for t in bk.tags or [])
            print(f"{bk.title or bk.url}\n    {bk.url}\n    {tags}")
            print()
    else:
        table = Table(title="Bookmarks")
        table.add_column("Title", style="green")
        table.add_column("URL", style="blue")
        table.add_column("Tags", style="yellow")
        table.add_column("Clicks", style="magenta")

        for bk in bookmarks:
            table.add_row(
                (bk.title or "")[:50],
                bk.url[:50],
                ", ".join(bk.tags or [])[:30],
                str(bk.clicked_count)
            )

        console.print(table)


def output_bookmark_details(bk: Bk):
    details = Table(show_header=False, box=None)
    details.add_column("Field", style="cyan bold")
    details.add_column("Value", style="white")

    details.add_row("URL", bk.url)
    details.add_row("Url Hash", bk.url_hash)
    details.add_row("Title", bk.title or "(none)")
    details.add_row("Tags", ", ".join(bk.tags or []) or "(none)")
    details.add_row("Favicon", bk.fav_icon_url or "(none)")
    details.add_row("Clicks", str(bk.clicked_count))
    details.add_row("Last Click",
                    bk.last_click_time.strftime("%Y-%m-%d %H:%M:%S") if bk.last_click_time else "(never)")

    console.print(Panel(details, title=bk.title or bk.url, border_style="blue"))


# =================
# BOOKMARK COMMANDS
# =================

def cmd_list(args):
    """List tracked bookmarks."""
    async def op(manager: BkManager):
        bookmarks = manager.list_bookmarks()
        if args.tag:
            bookmarks = [bk for bk in bookmarks if bk.has_tag(args.tag)]
        return bookmarks

    output_bookmarks(run_with_manager(op), args.output)


def cmd_get(args):
    """Show one bookmark."""
    async def op(manager: BkManager):
        return manager.get(args.url)

    bk = run_with_manager(op)
    if bk is None:
        console.print(f"[red]Bookmark not found: {args.url}[/red]")
        sys.exit(1)

    if args.output == "json":
        print(json.dumps(bk.to_dict(), indent=2))
    else:
        output_bookmark_details(bk)


def cmd_import(args):
    """Track bookmarks from a Chrome Bookmarks file."""
    nodes = load_chrome_bookmarks(args.file)

    async def op(manager: BkManager):
        return await manager.append_bookmarks(nodes)

    created = run_with_manager(op)
    console.print(f"[green]✓ Imported {created} new bookmark(s)[/green]")


def cmd_click(args):
    """Record clicks on a bookmark."""
    async def op(manager: BkManager):
        if manager.get(args.url) is None:
            return False
        await manager.add_click(args.url, args.count)
        return True

    if run_with_manager(op):
        console.print(f"[green]✓ Recorded {args.count} click(s)[/green]")
    else:
        console.print(f"[yellow]Bookmark not found: {args.url}[/yellow]")


# =================
# TAG COMMANDS
# =================

def cmd_tags(args):
    """List every tag in the registry."""
    async def op(manager: BkManager):
        counts = {tag: 0 for tag in manager.get_tags()}
        for bk in manager.list_bookmarks():
            for tag in bk.tags or []:
                counts[tag] = counts.get(tag, 0) + 1
        return counts

    counts = run_with_manager(op)
    if args.output == "json":
        print(json.dumps([{"tag": name, "count": count} for name, count in counts.items()], indent=2))
    else:
        table = Table(title="Tags")
        table.add_column("Tag", style="cyan")
        table.add_column("Count", style="green")
        for name, count in counts.items():
            table.add_row(name, str(count))
        console.print(table)


def cmd_tag_add(args):
    """Add a tag to a bookmark."""
    async def op(manager: BkManager):
        return await manager.add_tag(args.url, args.tag)

    if run_with_manager(op):
        console.print(f"[green]✓ Added tag '{args.tag.strip()}'[/green]")
    else:
        console.print("[yellow]Tag not added (blank, duplicate or unknown bookmark)[/yellow]")


def cmd_tag_remove(args):
    """Remove a tag from a bookmark."""
    async def op(manager: BkManager):
        bk = manager.get(args.url)
        if bk is None or not bk.has_tag(args.tag):
            return False
        await manager.remove_tag(args.url, args.tag)
        return True

    if run_with_manager(op):
        console.print(f"[green]✓ Removed tag '{args.tag}'[/green]")
    else:
        console.print(f"[yellow]Tag '{args.tag}' not found on {args.url}[/yellow]")


def cmd_tag_set(args):
    """Replace all tags of a bookmark."""
    async def op(manager: BkManager):
        await manager.update_tags(args.url, args.tags)

    run_with_manager(op)
    console.print(f"[green]✓ Tags set to {', '.join(args.tags) or '(none)'}[/green]")


# =================
# CLOUD COMMANDS
# =================

def cmd_cloud_export(args):
    """Write the cloud view of the collection to a file."""
    async def op(manager: BkManager):
        return manager.get_cloud_collection()

    cloud = run_with_manager(op)
    save_cloud_file(cloud, args.file, pretty=get_config().export_pretty)
    console.print(f"[green]✓ Exported {len(cloud.bks)} tagged bookmark(s) "
                  f"at etag version {cloud.etag_version}[/green]")


def cmd_cloud_load(args):
    """Merge a cloud snapshot file into the collection."""
    cloud = load_cloud_file(args.file)

    async def op(manager: BkManager):
        return await manager.load_cloud_collection(cloud)

    matched = run_with_manager(op)
    console.print(f"[green]✓ Loaded etag version {cloud.etag_version}: "
                  f"{matched} of {len(cloud.bks)} entries matched[/green]")


def cmd_cloud_etag(args):
    """Print the local etag version."""
    async def op(manager: BkManager):
        return manager.get_etag_version()

    print(run_with_manager(op))


# =================
# CONFIG
# =================

def cmd_config(args):
    """Show or change configuration."""
    from dataclasses import asdict

    config = get_config()

    if args.action == "set":
        if not args.key or args.value is None:
            console.print("[red]Usage: bkm config set KEY VALUE[/red]")
            sys.exit(2)
        try:
            config.set(args.key, args.value)
        except KeyError:
            console.print(f"[red]Unknown config key: {args.key}[/red]")
            sys.exit(1)
        path = config.save(Path(args.config) if args.config else None)
        console.print(f"[green]✓ Set {args.key} = {getattr(config, args.key)} in {path}[/green]")
        return

    if args.key:
        if args.key not in config.setting_names():
            console.print(f"[red]Unknown config key: {args.key}[/red]")
            sys.exit(1)
        print(getattr(config, args.key))
    elif args.output == "json":
        print(json.dumps(asdict(config), indent=2))
    else:
        table = Table(title="Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for key, value in asdict(config).items():
            table.add_row(key, str(value))
        console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="BKM - Bookmark Metadata Keeper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bkm bookmark import ~/.config/chromium/Default/Bookmarks
  bkm bookmark list --tag python
  bkm tag add https://docs.python.org python
  bkm tag set https://docs.python.org python docs
  bkm cloud export cloud.json
  bkm cloud load cloud.json
  bkm config set color_output false

Configuration:
  Default database: ./bkm.db or from config
  Config file: ~/.config/bkm/config.toml
  Environment: BKM_DATABASE, BKM_LOG_LEVEL, BKM_COLOR_OUTPUT
        """
    )

    parser.add_argument("--db", help="Database file (default: bkm.db)")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("-o", "--output", choices=["table", "json", "plain"], help="Output format")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command groups")

    # bookmark group
    bookmark_parser = subparsers.add_parser("bookmark", help="Bookmark operations")
    bookmark_subparsers = bookmark_parser.add_subparsers(dest="bookmark_command", required=True)

    bm_list = bookmark_subparsers.add_parser("list", help="List tracked bookmarks")
    bm_list.add_argument("--tag", help="Only bookmarks with this tag")
    bm_list.set_defaults(func=cmd_list)

    bm_get = bookmark_subparsers.add_parser("get", help="Show a bookmark")
    bm_get.add_argument("url", help="Bookmark URL")
    bm_get.set_defaults(func=cmd_get)

    bm_import = bookmark_subparsers.add_parser("import", help="Import a Chrome Bookmarks file")
    bm_import.add_argument("file", help="Path to the Bookmarks file")
    bm_import.set_defaults(func=cmd_import)

    bm_click = bookmark_subparsers.add_parser("click", help="Record clicks")
    bm_click.add_argument("url", help="Bookmark URL")
    bm_click.add_argument("--count", type=int, default=1, help="Number of clicks (default: 1)")
    bm_click.set_defaults(func=cmd_click)

    # tag group
    tag_parser = subparsers.add_parser("tag", help="Tag management")
    tag_subparsers = tag_parser.add_subparsers(dest="tag_command", required=True)

    tag_list = tag_subparsers.add_parser("list", help="List all tags")
    tag_list.set_defaults(func=cmd_tags)

    tag_add = tag_subparsers.add_parser("add", help="Add a tag to a bookmark")
    tag_add.add_argument("url", help="Bookmark URL")
    tag_add.add_argument("tag", help="Tag to add")
    tag_add.set_defaults(func=cmd_tag_add)

    tag_remove = tag_subparsers.add_parser("remove", help="Remove a tag from a bookmark")
    tag_remove.add_argument("url", help="Bookmark URL")
    tag_remove.add_argument("tag", help="Tag to remove")
    tag_remove.set_defaults(func=cmd_tag_remove)

    tag_set = tag_subparsers.add_parser("set", help="Replace all tags of a bookmark")
    tag_set.add_argument("url", help="Bookmark URL")
    tag_set.add_argument("tags", nargs="*", help="New tag list")
    tag_set.set_defaults(func=cmd_tag_set)

    # cloud group
    cloud_parser = subparsers.add_parser("cloud", help="Cloud snapshot operations")
    cloud_subparsers = cloud_parser.add_subparsers(dest="cloud_command", required=True)

    cloud_export = cloud_subparsers.add_parser("export", help="Export the cloud view to a file")
    cloud_export.add_argument("file", help="Output JSON file")
    cloud_export.set_defaults(func=cmd_cloud_export)

    cloud_load = cloud_subparsers.add_parser("load", help="Load a cloud snapshot file")
    cloud_load.add_argument("file", help="Input JSON file")
    cloud_load.set_defaults(func=cmd_cloud_load)

    cloud_etag = cloud_subparsers.add_parser("etag", help="Show the local etag version")
    cloud_etag.set_defaults(func=cmd_cloud_etag)

    # config
    config_parser = subparsers.add_parser("config", help="Show or change configuration")
    config_parser.add_argument("action", choices=["show", "set"], nargs="?", default="show",
                               help="show (default) or set")
    config_parser.add_argument("key", nargs="?", help="Config key")
    config_parser.add_argument("value", nargs="?", help="Config value (for set)")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config_args = {}
    if args.output:
        config_args["output_format"] = args.output
    if args.config:
        config_args["config_file"] = Path(args.config)

    config = init_config(database=args.db, **config_args)

    logging.basicConfig(level=config.log_level.upper(), format='%(levelname)s: %(message)s')

    global console
    console = Console(no_color=not config.color_output)

    if not args.output:
        args.output = config.output_format

    try:
        args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
