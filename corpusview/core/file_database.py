import csv
import logging
import ntpath
import os
import sqlite3
import time
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .interval import Interval
from .record_source import summarize
from .records import FileRecord, SortOrder, TOP_LEVEL_ATTRIBUTES, ViewIdentity

_RECORD_COLUMNS = "f.file_id, f.file_name, f.file_path, f.file_size, f.uploaded, f.thumbnail"


def _name_contains(file_name: Optional[str], needle: str) -> int:
    if file_name is None:
        return 0
    return int(needle.lower() in file_name.lower())


class FileDatabase:
    """
    SQLite store for the file corpus: one row per file plus normalized annotations.
    """

    def __init__(self, db_path: str):
        logging.info(f"Initializing FileDatabase with path: {db_path}")
        self.db_path = db_path
        self._lock = Lock()

        # Ensure database directory exists
        db_dir = os.path.dirname(db_path)
        if db_dir: # Only create directory if db_dir is not an empty string
            os.makedirs(db_dir, exist_ok=True)

        # check_same_thread=False: the socket server and asyncio.to_thread callers share this connection
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        # Literal, case-insensitive substring test; same rule as FileFilter.matches
        self.conn.create_function("name_contains", 2, _name_contains, deterministic=True)

        self._init_database()

    def _init_database(self):
        with self._lock:
            try:
                cursor = self.conn.cursor()

                # Enable Write-Ahead Logging for better concurrency
                cursor.execute("PRAGMA journal_mode=WAL;")
                cursor.execute("PRAGMA foreign_keys=ON;")

                cursor.execute('''
                    CREATE TABLE IF NOT EXISTS files (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        file_id TEXT UNIQUE NOT NULL,
                        file_name TEXT NOT NULL,
                        file_path TEXT NOT NULL,
                        file_size INTEGER,
                        uploaded TEXT,
                        thumbnail TEXT,
                        created_at REAL NOT NULL
                    )
                ''')
                cursor.execute('CREATE INDEX IF NOT EXISTS idx_file_name ON files(file_name)')
                cursor.execute('CREATE INDEX IF NOT EXISTS idx_file_path ON files(file_path)')
                cursor.execute('CREATE INDEX IF NOT EXISTS idx_uploaded ON files(uploaded)')
                cursor.execute('CREATE INDEX IF NOT EXISTS idx_file_size ON files(file_size)')

                # Annotations: one row per (file, name, value)
                cursor.execute('''
                    CREATE TABLE IF NOT EXISTS file_annotations (
                        file_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        value TEXT NOT NULL,
                        PRIMARY KEY (file_id, name, value),
                        FOREIGN KEY (file_id) REFERENCES files(file_id) ON DELETE CASCADE
                    )
                ''')
                cursor.execute('CREATE INDEX IF NOT EXISTS idx_annotations_name_value ON file_annotations(name, value)')

                self.conn.commit()
            except sqlite3.Error as e:
                logging.error(f"Error initializing file database: {e}", exc_info=True)
                raise

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------

    @staticmethod
    def _where(identity: ViewIdentity) -> Tuple[str, List[Any]]:
        """WHERE clause for a view: same-name filters OR-ed, different names AND-ed."""
        groups: Dict[str, List[Any]] = {}
        for f in identity.sorted_filters():
            groups.setdefault(f.name, []).append(f.value)

        clauses: List[str] = []
        params: List[Any] = []
        for name, values in groups.items():
            if name == "file_name":
                clauses.append("(" + " OR ".join("name_contains(f.file_name, ?)" for _ in values) + ")")
                params.extend(str(v) for v in values)
            elif name in TOP_LEVEL_ATTRIBUTES:
                placeholders = ", ".join("?" for _ in values)
                clauses.append(f"CAST(f.{name} AS TEXT) IN ({placeholders})")
                params.extend(str(v) for v in values)
            else:
                placeholders = ", ".join("?" for _ in values)
                clauses.append(f"""f.file_id IN (
                    SELECT a.file_id FROM file_annotations a
                    WHERE a.name = ? AND a.value IN ({placeholders})
                )""")
                params.append(name)
                params.extend(str(v) for v in values)

        if not clauses:
            return "", []
        return " WHERE " + " AND ".join(clauses), params

    @staticmethod
    def _order_by(identity: ViewIdentity) -> Tuple[str, List[Any]]:
        sort = identity.sort
        if sort is None:
            return " ORDER BY f.id", []
        direction = "DESC" if sort.order is SortOrder.DESC else "ASC"
        if sort.annotation_name in TOP_LEVEL_ATTRIBUTES:
            column = f"f.{sort.annotation_name}"
            return f" ORDER BY ({column} IS NULL), {column} {direction}, f.file_id ASC", []
        expr = "(SELECT MIN(a.value) FROM file_annotations a WHERE a.file_id = f.file_id AND a.name = ?)"
        # The subquery appears twice, so its parameter does too.
        return (
            f" ORDER BY ({expr} IS NULL), {expr} {direction}, f.file_id ASC",
            [sort.annotation_name, sort.annotation_name],
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def count(self, identity: ViewIdentity) -> int:
        where, params = self._where(identity)
        try:
            with self._lock:
                cursor = self.conn.cursor()
                cursor.execute(f"SELECT COUNT(*) FROM files f{where}", params)
                return cursor.fetchone()[0]
        except sqlite3.Error as e:
            logging.error(f"Error counting files for view {identity.key()[:8]}: {e}", exc_info=True)
            raise

    def fetch(self, identity: ViewIdentity, offset: int, limit: int) -> List[FileRecord]:
        """One page of a view, in view order."""
        where, where_params = self._where(identity)
        order, order_params = self._order_by(identity)
        try:
            with self._lock:
                cursor = self.conn.cursor()
                cursor.execute(
                    f"SELECT {_RECORD_COLUMNS} FROM files f{where}{order} LIMIT ? OFFSET ?",
                    where_params + order_params + [limit, offset],
                )
                rows = cursor.fetchall()
                annotations = self._annotations_for(cursor, [row[0] for row in rows])
        except sqlite3.Error as e:
            logging.error(f"Error fetching {limit} files at {offset} for view {identity.key()[:8]}: {e}", exc_info=True)
            raise

        return [
            FileRecord(
                file_id=row[0],
                file_name=row[1],
                file_path=row[2],
                file_size=row[3],
                uploaded=row[4],
                thumbnail=row[5],
                annotations=annotations.get(row[0], {}),
            )
            for row in rows
        ]

    @staticmethod
    def _annotations_for(cursor: sqlite3.Cursor, file_ids: List[str]) -> Dict[str, Dict[str, List[str]]]:
        if not file_ids:
            return {}
        placeholders = ",".join("?" for _ in file_ids)
        cursor.execute(
            f"SELECT file_id, name, value FROM file_annotations WHERE file_id IN ({placeholders}) ORDER BY rowid",
            file_ids,
        )
        result: Dict[str, Dict[str, List[str]]] = {}
        for file_id, name, value in cursor.fetchall():
            result.setdefault(file_id, {}).setdefault(name, []).append(value)
        return result

    def aggregate(self, compact_ranges: List[Dict[str, Any]]) -> Dict[str, Optional[int]]:
        """Unique count and total size of the rows named by a compact range selection.

        Each view is numbered with ROW_NUMBER() in its own order and its ranges
        are picked by position; UNION drops files selected in more than one view.
        Only the aggregate row leaves SQLite.
        """
        parts: List[str] = []
        params: List[Any] = []
        for entry in compact_ranges:
            intervals = [Interval.from_dict(raw) for raw in entry.get("ranges", [])]
            if not intervals:
                continue
            identity = ViewIdentity.from_dict(entry)
            where, where_params = self._where(identity)
            order, order_params = self._order_by(identity)
            positions = " OR ".join("pos BETWEEN ? AND ?" for _ in intervals)
            parts.append(
                "SELECT file_id, file_size FROM ("
                f"SELECT f.file_id, f.file_size, ROW_NUMBER() OVER ({order.strip()}) - 1 AS pos FROM files f{where}"
                f") WHERE {positions}"
            )
            params.extend(order_params + where_params)
            for interval in intervals:
                params.extend([interval.start, interval.end])

        if not parts:
            return summarize([])

        query = f"SELECT COUNT(*), SUM(file_size) FROM ({' UNION '.join(parts)})"
        try:
            with self._lock:
                cursor = self.conn.cursor()
                cursor.execute(query, params)
                count, size = cursor.fetchone()
        except sqlite3.Error as e:
            logging.error(f"Error aggregating selection over {len(parts)} view(s): {e}", exc_info=True)
            raise
        return {"count": count, "size": size}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_records(self, records: Iterable[FileRecord]) -> int:
        """Inserts or replaces records (matched on file_id). Returns the number written."""
        records = list(records)
        if not records:
            return 0
        now = time.time()
        try:
            with self._lock:
                with self.conn:  # Transaction
                    cursor = self.conn.cursor()
                    for record in records:
                        cursor.execute('''
                            INSERT INTO files (file_id, file_name, file_path, file_size, uploaded, thumbnail, created_at)
                            VALUES (?, ?, ?, ?, ?, ?, ?)
                            ON CONFLICT(file_id) DO UPDATE SET
                                file_name = excluded.file_name,
                                file_path = excluded.file_path,
                                file_size = excluded.file_size,
                                uploaded = excluded.uploaded,
                                thumbnail = excluded.thumbnail
                        ''', (
                            record.file_id, record.file_name, record.file_path, record.file_size,
                            record.uploaded, record.thumbnail, now,
                        ))
                        cursor.execute('DELETE FROM file_annotations WHERE file_id = ?', (record.file_id,))
                        cursor.executemany(
                            'INSERT OR IGNORE INTO file_annotations (file_id, name, value) VALUES (?, ?, ?)',
                            [
                                (record.file_id, name, str(value))
                                for name, values in record.annotations.items()
                                for value in values
                            ],
                        )
        except sqlite3.Error as e:
            logging.error(f"Error storing {len(records)} records: {e}", exc_info=True)
            raise
        logging.info(f"Stored {len(records)} records in {self.db_path}")
        return len(records)

    def import_csv(self, csv_path: str) -> int:
        """Loads a CSV data source. ``file_path`` is required; unknown columns become annotations."""
        with open(csv_path, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            if not reader.fieldnames or "file_path" not in reader.fieldnames:
                raise ValueError(f'"file_path" is a required column for data sources ({csv_path})')
            records = [self._record_from_row(row) for row in reader]
        return self.add_records(records)

    @staticmethod
    def _record_from_row(row: Dict[str, str]) -> FileRecord:
        file_path = row["file_path"]
        size = (row.get("file_size") or "").strip()
        annotations: Dict[str, List[str]] = {}
        for name, raw in row.items():
            if name is None or name in TOP_LEVEL_ATTRIBUTES or name == "thumbnail" or not raw:
                continue
            values = [v.strip() for v in raw.split(",") if v.strip()]
            if values:
                annotations[name] = values
        return FileRecord(
            # Without an explicit id the path is the only stable unique key.
            file_id=row.get("file_id") or file_path,
            file_name=row.get("file_name") or ntpath.basename(file_path.replace("/", "\\")) or file_path,
            file_path=file_path,
            file_size=int(size) if size else None,
            uploaded=row.get("uploaded") or None,
            thumbnail=row.get("thumbnail") or None,
            annotations=annotations,
        )

    def close(self):
        """Closes the database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                logging.info(f"File database connection closed: {self.db_path}")

# Global database instance
_file_database: Optional[FileDatabase] = None
_file_database_lock = Lock()

def get_file_database(db_path: str) -> FileDatabase:
    global _file_database
    if _file_database is None:
        with _file_database_lock:
            if _file_database is None:
                _file_database = FileDatabase(db_path)
    return _file_database
