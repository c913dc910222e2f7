import os
import sys
import logging
import signal
import threading
import time
from typing import Optional

from .config.config_manager import ConfigManager
from .core.file_database import get_file_database
from .network.record_server import RecordSocketServer


def setup_logging(log_level: str, log_path: Optional[str] = None):
    numeric_level = getattr(logging, str(log_level).upper(), logging.INFO)
    log_path = os.path.expanduser(log_path or "~/.corpusview/corpusview.log")
    log_dir = os.path.dirname(log_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=[
            logging.FileHandler(log_path, mode="a"),
            logging.StreamHandler(sys.stderr)
        ]
    )


def main(config_path: Optional[str] = None, socket_path: Optional[str] = None, database_path: Optional[str] = None):
    config_manager = ConfigManager(config_path)
    logging_level = config_manager.logging_level
    setup_logging(logging_level, config_manager.get("log_file"))
    logging.info(f"Logging level set to: {logging_level.upper()}")

    SOCKET_PATH = os.path.expanduser(socket_path or config_manager.socket_path)
    DATABASE_PATH = os.path.expanduser(database_path or config_manager.database_path)

    logging.info("Starting corpus daemon...")
    database = get_file_database(DATABASE_PATH)

    server: Optional[RecordSocketServer] = None

    def shutdown_service(signum=None, frame=None):
        logging.info("Shutting down corpus daemon...")
        if server:
            server.shutdown()
        database.close()
        logging.info("Daemon shutdown complete.")
        sys.exit(0)

    try:
        # Binding creates the socket file, which is what clients wait for.
        server = RecordSocketServer(SOCKET_PATH, database)
        server_thread = threading.Thread(target=server.run_forever, daemon=True)
        server_thread.start()
        logging.info(f"Serving {DATABASE_PATH} on {SOCKET_PATH}")

        signal.signal(signal.SIGINT, shutdown_service)
        signal.signal(signal.SIGTERM, shutdown_service)

        # Keep the main thread alive
        while server_thread.is_alive():
            time.sleep(1)

    except Exception as e:  # why: startup failure must be logged before process dies; no narrower type covers all init failures
        logging.error(f"Daemon failed to start: {e}", exc_info=True)
        shutdown_service()


if __name__ == "__main__":
    main()
