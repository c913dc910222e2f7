"""Argument helpers shared by the corpus subcommands."""

import argparse
from typing import List, Optional, Tuple

from ..config.config_manager import ConfigManager
from ..core.file_database import FileDatabase
from ..core.record_source import DatabaseRecordSource, RecordSource
from ..core.records import FileFilter, FileSort, SortOrder
from ..daemon import setup_logging
from ..network.socket_client import SocketRecordSource


def add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--socket", help="Daemon socket (default: system.socket_path)")
    parser.add_argument("--database", help="Read this SQLite file directly instead of asking the daemon")


def load_config(args: argparse.Namespace) -> ConfigManager:
    config_manager = ConfigManager(args.config)
    setup_logging(config_manager.logging_level, config_manager.get("log_file"))
    return config_manager


def open_source(args: argparse.Namespace, config_manager: ConfigManager) -> Tuple[RecordSource, Optional[FileDatabase]]:
    """The record source named on the command line; the database is returned so callers can close it."""
    if args.database:
        database = FileDatabase(args.database)
        return DatabaseRecordSource(database), database
    return SocketRecordSource(
        args.socket or config_manager.socket_path,
        pool_size=config_manager.get("system.pool_size", 3),
        timeout=config_manager.get("system.client_timeout", 20.0),
        max_retries=config_manager.get("system.max_retries", 2),
    ), None


def parse_filter(text: str) -> FileFilter:
    name, sep, value = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"filter must look like name=value, got {text!r}")
    return FileFilter(name, value)


def parse_sort(text: str) -> FileSort:
    name, _, order = text.partition(":")
    if not name:
        raise argparse.ArgumentTypeError(f"sort must look like column[:asc|desc], got {text!r}")
    try:
        return FileSort(name, SortOrder(order.upper() or "ASC"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"sort order must be asc or desc, got {order!r}") from None


def view_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--filter", dest="filters", action="append", type=parse_filter, default=[],
                        metavar="NAME=VALUE", help="Filter rows; repeat for more filters")
    parser.add_argument("--sort", type=parse_sort, metavar="COLUMN[:desc]", help="Sort column")


def format_size(size: Optional[int]) -> str:
    if size is None:
        return "-"
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return str(size)


def describe_filters(filters: List[FileFilter]) -> str:
    return ", ".join(f"{f.name}={f.value}" for f in filters) or "(none)"
