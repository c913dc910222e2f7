"""Start the corpus record daemon in the foreground."""

import argparse


def main(argv=None):
    parser = argparse.ArgumentParser(prog="corpus daemon", description="Serve the file database over a Unix socket.")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--socket", help="Override system.socket_path")
    parser.add_argument("--database", help="Override files.database")
    args = parser.parse_args(argv)

    from ..daemon import main as _daemon_main
    _daemon_main(config_path=args.config, socket_path=args.socket, database_path=args.database)
    return 0
