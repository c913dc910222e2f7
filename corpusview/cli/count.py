"""Print the number of records in a filtered, sorted view.

Usage:
    corpus count [--filter name=value ...] [--sort column[:desc]] [--show N]
"""

import argparse
import asyncio
import sys

from ._common import add_source_arguments, describe_filters, load_config, open_source, view_arguments
from ..core.interval import Interval
from ..core.record_source import RecordSourceError
from ..core.view import View


async def _run(view: View, show: int) -> int:
    total = await view.total_count()
    print(f"{total} record(s) match {describe_filters(view.filters)}")
    if show > 0 and total > 0:
        for index, record in enumerate(await view.records_for([Interval(0, min(show, total) - 1)])):
            print(f"{index:6d}  {record.file_id}  {record.file_path}")
    return total


def main(argv=None):
    parser = argparse.ArgumentParser(prog="corpus count", description="Count the records of a view.")
    add_source_arguments(parser)
    view_arguments(parser)
    parser.add_argument("--show", type=int, default=0, metavar="N", help="Also list the first N rows")
    args = parser.parse_args(argv)

    config_manager = load_config(args)
    source, database = open_source(args, config_manager)
    view = View(source, args.filters, args.sort, page_size=config_manager.page_size)
    try:
        asyncio.run(_run(view, args.show))
    except RecordSourceError as e:
        print(f"count: {e}", file=sys.stderr)
        return 1
    finally:
        if database is not None:
            database.close()
        else:
            source.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
