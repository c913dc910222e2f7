"""Load a CSV data source into the file database.

Usage:
    corpus import-csv <file.csv> [--database PATH]

The CSV needs a file_path column. file_id, file_name, file_size, uploaded and
thumbnail map to record fields; every other column becomes an annotation,
with comma-separated cells split into several values.
"""

import argparse
import logging
import os
import sys

from ._common import load_config
from ..core.file_database import FileDatabase


def main(argv=None):
    parser = argparse.ArgumentParser(prog="corpus import-csv", description="Load a CSV into the file database.")
    parser.add_argument("csv_path", help="CSV file with at least a file_path column")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--database", help="Override files.database")
    args = parser.parse_args(argv)

    config_manager = load_config(args)
    database = FileDatabase(os.path.expanduser(args.database or config_manager.database_path))
    try:
        imported = database.import_csv(args.csv_path)
    except (OSError, ValueError) as e:
        logging.error(f"Import of {args.csv_path} failed: {e}")
        print(f"import-csv: {e}", file=sys.stderr)
        return 1
    finally:
        database.close()

    print(f"Imported {imported} record(s) into {database.db_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
