"""Resolve a saved selection and write its records to a CSV manifest.

Usage:
    corpus export-manifest <selection.json> <out.csv>

selection.json holds the compact form of a selection, as produced by
Selection.to_compact_ranges(): a list of {"filters", "sort", "ranges"} objects.
"""

import argparse
import asyncio
import csv
import json
import logging
import sys
from typing import Any, Dict, List

from ._common import add_source_arguments, format_size, load_config, open_source
from ..core.interval import Interval
from ..core.record_source import RecordSource, RecordSourceError
from ..core.records import FileFilter, FileRecord, FileSort
from ..core.selection import Selection
from ..core.view import ViewRegistry

MANIFEST_COLUMNS = ["file_id", "file_name", "file_path", "file_size", "uploaded"]


def load_selection(compact_ranges: List[Dict[str, Any]], registry: ViewRegistry) -> Selection:
    """Rebuild a Selection from its compact form against the views of *registry*."""
    if not isinstance(compact_ranges, list):
        raise ValueError("selection file must contain a list of views")
    selection = Selection()
    for entry in compact_ranges:
        sort = entry.get("sort")
        view = registry.get(
            [FileFilter.from_dict(f) for f in entry.get("filters") or []],
            FileSort.from_dict(sort) if sort else None,
        )
        for raw in entry.get("ranges") or []:
            selection = selection.select(view, Interval.from_dict(raw), update_existing=True)
    return selection


def write_manifest(records: List[FileRecord], out_path: str) -> int:
    """Write one row per unique record; annotation columns follow the fixed ones, sorted by name."""
    unique: Dict[str, FileRecord] = {}
    for record in records:
        unique.setdefault(record.file_id, record)
    annotation_names = sorted({name for r in unique.values() for name in r.annotations})

    with open(out_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(MANIFEST_COLUMNS + annotation_names)
        for record in unique.values():
            row = [record.file_id, record.file_name, record.file_path,
                   "" if record.file_size is None else record.file_size, record.uploaded or ""]
            row.extend(",".join(record.annotations.get(name, [])) for name in annotation_names)
            writer.writerow(row)
    return len(unique)


async def export(source: RecordSource, compact_ranges: List[Dict[str, Any]], out_path: str, page_size: int) -> Dict[str, Any]:
    registry = ViewRegistry(source, page_size=page_size)
    selection = load_selection(compact_ranges, registry)
    summary = await selection.aggregate()
    records = await selection.fetch_all_records()
    written = write_manifest(records, out_path)
    logging.info(f"Wrote {written} record(s) to {out_path}")
    return {"written": written, "count": summary["count"], "size": summary["size"]}


def main(argv=None):
    parser = argparse.ArgumentParser(prog="corpus export-manifest", description="Write a CSV manifest for a saved selection.")
    parser.add_argument("selection_path", help="JSON file with a compact range selection")
    parser.add_argument("out_path", help="CSV file to write")
    add_source_arguments(parser)
    args = parser.parse_args(argv)

    try:
        with open(args.selection_path, "r", encoding="utf-8") as f:
            compact_ranges = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"export-manifest: cannot read {args.selection_path}: {e}", file=sys.stderr)
        return 1

    config_manager = load_config(args)
    source, database = open_source(args, config_manager)
    try:
        result = asyncio.run(export(source, compact_ranges, args.out_path, config_manager.page_size))
    except (RecordSourceError, ValueError, TypeError, KeyError) as e:
        print(f"export-manifest: {e}", file=sys.stderr)
        return 1
    finally:
        if database is not None:
            database.close()
        else:
            source.close()

    print(f"Wrote {result['written']} record(s) ({format_size(result['size'])}) to {args.out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
