# Notes_Cache_DB.py
# Description: DB Library for the on-device notes cache (current state + sync status per note).
#
"""
Notes_Cache_DB.py
-----------------

SQLite-backed storage for the local-first notes client.

This library owns every persisted note row and is the single choke point through
which the UI-facing service and the sync layer read and write notes:
- Schema management with versioning and ordered, idempotent migrations.
- Thread-local SQLite connections (WAL mode for file databases).
- Optimistic local writes that stamp `local_updated_at` and mark the row `pending`.
- Authoritative writes from the server (`upsert_note_from_server`) that mark the row `synced`.
- Soft deletion pending remote acknowledgment, and hard deletion once acknowledged.
- An id alias table so that a client-generated id can be resolved to the id the
  server assigned when the create was acknowledged.
- A transaction context manager; transactions nest (only the outermost commits).

The pending-mutation queue lives in the same database file but is accessed
through `Pending_Mutations.PendingMutationQueue`.
"""
# Imports
import json
import logging
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TYPE_CHECKING, Union
#
# Third-Party Libraries
#
# Local Imports
from .note_models import (
    InputError,
    Note,
    NoteFields,
    NoteUpdate,
    SyncStatus,
    note_update_to_columns,
    utc_now_iso,
)
if TYPE_CHECKING:
    from ..notes_api.schemas import RemoteNote
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)


# --- Custom Exceptions ---
class NotesCacheDBError(Exception):
    """Base exception for NotesCacheDB related errors."""
    pass


class SchemaError(NotesCacheDBError):
    """Exception for schema version mismatches or migration failures."""
    pass


class NoteNotFoundError(NotesCacheDBError):
    """Raised when a local write targets a note that does not exist (or is deleted)."""

    def __init__(self, note_id: str):
        super().__init__(f"Note '{note_id}' not found in local cache.")
        self.note_id = note_id


# --- Schema ---
_SCHEMA_VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS db_schema_version(
  schema_name TEXT PRIMARY KEY NOT NULL,
  version     INTEGER NOT NULL
);
"""

# V1: the status-tag layout used before the cache + queue split.
_MIGRATION_V1_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS notes(
      id               TEXT PRIMARY KEY,
      title            TEXT NOT NULL,
      body             TEXT NOT NULL,
      tags             TEXT NOT NULL DEFAULT '[]',
      updated_at       TEXT NOT NULL,
      local_updated_at TEXT NOT NULL,
      sync_status      TEXT NOT NULL DEFAULT 'pending',
      is_deleted       INTEGER NOT NULL DEFAULT 0,
      last_sync_error  TEXT
    )
    """,
)

# V2: cache mirror of the remote notes plus the append-only queue of offline writes.
_MIGRATION_V2_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS notes_cache(
      id               TEXT PRIMARY KEY,
      title            TEXT NOT NULL,
      body             TEXT NOT NULL,
      tags             TEXT NOT NULL DEFAULT '[]',
      updated_at       TEXT NOT NULL,
      local_updated_at TEXT NOT NULL,
      creation_time    TEXT NOT NULL,
      sync_status      TEXT NOT NULL DEFAULT 'synced'
                         CHECK(sync_status IN ('synced','pending','failed')),
      is_deleted       INTEGER NOT NULL DEFAULT 0,
      last_sync_error  TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_notes_cache_status ON notes_cache(sync_status, local_updated_at)",
    "CREATE INDEX IF NOT EXISTS idx_notes_cache_updated ON notes_cache(updated_at)",
    """
    CREATE TABLE IF NOT EXISTS pending_mutations(
      id         INTEGER PRIMARY KEY AUTOINCREMENT,
      type       TEXT NOT NULL CHECK(type IN ('create','update','remove')),
      note_id    TEXT,
      payload    TEXT NOT NULL,
      created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_pending_mutations_note ON pending_mutations(note_id)",
)

_LEGACY_NOTES_CARRY_OVER_SQL = """
INSERT OR IGNORE INTO notes_cache
  (id, title, body, tags, updated_at, local_updated_at, creation_time,
   sync_status, is_deleted, last_sync_error)
SELECT id, title, body, tags, updated_at, local_updated_at, updated_at,
       sync_status, is_deleted, last_sync_error
  FROM notes
"""

# V3: temporary id -> server id, recorded when a create is acknowledged.
_MIGRATION_V3_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS note_id_aliases(
      local_id   TEXT PRIMARY KEY,
      server_id  TEXT NOT NULL,
      created_at TEXT NOT NULL
    )
    """,
)


# --- Database Class ---
class NotesCacheDB:
    """
    Manages SQLite connections and operations for the local notes cache.

    Attributes:
        db_path (Path): The absolute path to the SQLite database file, or Path(":memory:").
        is_memory_db (bool): True if the database is in-memory.
        db_path_str (str): String representation of the database path for SQLite connection.
    """
    _CURRENT_SCHEMA_VERSION = 3
    _SCHEMA_NAME = "field_notes_schema"

    def __init__(self, db_path: Union[str, Path]):
        """
        Opens (creating if needed) the database and migrates it to `_CURRENT_SCHEMA_VERSION`.

        Raises:
            NotesCacheDBError: If the directory cannot be created or initialization fails.
            SchemaError: If the database is newer than this code or a migration fails.
        """
        if isinstance(db_path, Path):
            self.is_memory_db = False
            self.db_path = db_path.resolve()
        else:
            self.is_memory_db = (db_path == ':memory:')
            self.db_path = Path(db_path).resolve() if not self.is_memory_db else Path(":memory:")
        self.db_path_str = str(self.db_path) if not self.is_memory_db else ':memory:'

        if not self.is_memory_db:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise NotesCacheDBError(f"Failed to create database directory {self.db_path.parent}: {e}") from e

        logger.info(f"Initializing NotesCacheDB for path: {self.db_path_str}")
        self._local = threading.local()
        try:
            self._initialize_schema()
        except SchemaError:
            self.close_connection()
            raise
        except (NotesCacheDBError, sqlite3.Error) as e:
            logger.critical(f"FATAL: DB Initialization failed for {self.db_path_str}: {e}", exc_info=True)
            self.close_connection()
            raise NotesCacheDBError(f"Database initialization failed: {e}") from e

    # --- Connection Management ---
    def _get_thread_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, 'conn', None)
        if conn:
            try:
                conn.execute("SELECT 1")
            except (sqlite3.ProgrammingError, sqlite3.OperationalError):
                logger.warning(f"Thread-local connection for {self.db_path_str} became unusable. Reopening.")
                conn = None

        if not conn:
            try:
                # isolation_level=None: transactions are opened explicitly by TransactionContextManager
                conn = sqlite3.connect(self.db_path_str, check_same_thread=False, timeout=15,
                                       isolation_level=None)
                conn.row_factory = sqlite3.Row
                if not self.is_memory_db:
                    conn.execute("PRAGMA journal_mode=WAL;")
                    conn.execute("PRAGMA synchronous=NORMAL;")
                self._local.conn = conn
                logger.debug(f"Opened SQLite connection to {self.db_path_str} for thread {threading.get_ident()}")
            except sqlite3.Error as e:
                logger.error(f"Failed to connect to database {self.db_path_str}: {e}", exc_info=True)
                self._local.conn = None
                raise NotesCacheDBError(f"Failed to connect to database '{self.db_path_str}': {e}") from e
        return self._local.conn

    def get_connection(self) -> sqlite3.Connection:
        return self._get_thread_connection()

    def close_connection(self):
        """Closes this thread's connection, checkpointing the WAL for file databases."""
        conn = getattr(self._local, 'conn', None)
        if conn is None:
            return
        try:
            if conn.in_transaction:
                logger.warning(f"Connection to {self.db_path_str} closed inside a transaction. Rolling back.")
                conn.rollback()
            if not self.is_memory_db:
                conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")
            conn.close()
            logger.debug(f"Closed connection for thread {threading.get_ident()} to {self.db_path_str}.")
        except sqlite3.Error as e:
            logger.warning(f"Error during SQLite connection close for {self.db_path_str}: {e}")
        finally:
            self._local.conn = None

    # --- Query Execution ---
    def execute_query(self, query: str, params: Optional[Union[tuple, Dict[str, Any]]] = None) -> sqlite3.Cursor:
        """
        Executes a single statement on this thread's connection.

        Raises:
            NotesCacheDBError: For any SQLite error.
        """
        conn = self.get_connection()
        try:
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"Executing SQL: {' '.join(query.split())[:300]} Params: {str(params)[:200]}")
            return conn.execute(query, params or ())
        except sqlite3.Error as e:
            logger.error(f"Query execution failed: {query[:300]}... Error: {e}", exc_info=True)
            raise NotesCacheDBError(f"Query execution failed: {e}") from e

    def transaction(self) -> 'TransactionContextManager':
        """
        Returns a context manager for database transactions.

        Usage:
            with db.transaction() as conn:
                conn.execute(...)
        """
        return TransactionContextManager(self)

    # --- Schema Initialization and Migration ---
    def _get_db_version(self, conn: sqlite3.Connection) -> int:
        try:
            row = conn.execute("SELECT version FROM db_schema_version WHERE schema_name = ? LIMIT 1",
                               (self._SCHEMA_NAME,)).fetchone()
            return row['version'] if row else 0
        except sqlite3.Error as e:
            if "no such table" in str(e).lower():
                return 0
            raise SchemaError(f"Could not determine schema version for '{self._SCHEMA_NAME}': {e}") from e

    def _set_db_version(self, conn: sqlite3.Connection, version: int):
        conn.execute("INSERT OR REPLACE INTO db_schema_version(schema_name, version) VALUES (?, ?)",
                     (self._SCHEMA_NAME, version))

    @staticmethod
    def _table_exists(conn: sqlite3.Connection, table_name: str) -> bool:
        row = conn.execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table_name,)).fetchone()
        return row is not None

    def _migrate_to_v1(self, conn: sqlite3.Connection):
        for statement in _MIGRATION_V1_STATEMENTS:
            conn.execute(statement)

    def _migrate_to_v2(self, conn: sqlite3.Connection):
        for statement in _MIGRATION_V2_STATEMENTS:
            conn.execute(statement)
        if self._table_exists(conn, "notes"):
            carried = conn.execute(_LEGACY_NOTES_CARRY_OVER_SQL).rowcount
            conn.execute("DROP TABLE IF EXISTS notes")
            logger.info(f"[{self._SCHEMA_NAME} V2] Carried {carried} legacy note row(s) into notes_cache.")

    def _migrate_to_v3(self, conn: sqlite3.Connection):
        for statement in _MIGRATION_V3_STATEMENTS:
            conn.execute(statement)

    def _migrations(self) -> Sequence[tuple]:
        return (
            (1, self._migrate_to_v1),
            (2, self._migrate_to_v2),
            (3, self._migrate_to_v3),
        )

    def _initialize_schema(self):
        """
        Brings the database to `_CURRENT_SCHEMA_VERSION` by applying, in order, every
        migration step newer than the stored version. Each step runs in the same
        transaction as the version bump, so a crash never leaves a half-applied step.
        """
        conn = self.get_connection()
        try:
            with self.transaction():
                conn.execute(_SCHEMA_VERSION_TABLE_SQL)
                current_version = self._get_db_version(conn)
                target_version = self._CURRENT_SCHEMA_VERSION
                logger.info(f"Checking DB schema '{self._SCHEMA_NAME}'. Current version: {current_version}. "
                            f"Code supports: {target_version}")

                if current_version > target_version:
                    raise SchemaError(
                        f"Database schema '{self._SCHEMA_NAME}' version ({current_version}) is newer than "
                        f"supported by code ({target_version}). Aborting.")

                for version, step in self._migrations():
                    if version <= current_version:
                        continue
                    logger.info(f"Applying migration V{version} for '{self._SCHEMA_NAME}' to {self.db_path_str}")
                    step(conn)
                    self._set_db_version(conn, version)

                final_version = self._get_db_version(conn)
                if final_version != target_version:
                    raise SchemaError(f"Schema migration finished at version {final_version}, "
                                      f"expected {target_version}.")
        except SchemaError:
            raise
        except sqlite3.Error as e:
            logger.error(f"Schema initialization/migration failed for '{self._SCHEMA_NAME}': {e}", exc_info=True)
            raise SchemaError(f"Schema initialization/migration for '{self._SCHEMA_NAME}' failed: {e}") from e

    # --- Internal Helpers ---
    @staticmethod
    def _generate_uuid() -> str:
        return str(uuid.uuid4())

    def _fetch_note(self, conn: sqlite3.Connection, note_id: str, include_deleted: bool) -> Optional[Note]:
        query = "SELECT * FROM notes_cache WHERE id = ?"
        if not include_deleted:
            query += " AND is_deleted = 0"
        row = conn.execute(query, (note_id,)).fetchone()
        return Note.from_row(row) if row else None

    def _run_write(self, description: str, work: Callable[[sqlite3.Connection], Any]) -> Any:
        try:
            with self.transaction() as conn:
                return work(conn)
        except (NotesCacheDBError, InputError):
            raise
        except sqlite3.Error as e:
            logger.error(f"Database error while trying to {description}: {e}", exc_info=True)
            raise NotesCacheDBError(f"Failed to {description}: {e}") from e

    # --- Reads ---
    def get_all_notes(self) -> List[Note]:
        """All non-deleted notes, most recently updated first."""
        cursor = self.execute_query(
            "SELECT * FROM notes_cache WHERE is_deleted = 0 ORDER BY updated_at DESC, local_updated_at DESC")
        return [Note.from_row(row) for row in cursor.fetchall()]

    def get_note_by_id(self, note_id: str) -> Optional[Note]:
        cursor = self.execute_query("SELECT * FROM notes_cache WHERE id = ? AND is_deleted = 0", (note_id,))
        row = cursor.fetchone()
        return Note.from_row(row) if row else None

    def get_note_for_sync(self, note_id: str) -> Optional[Note]:
        """Like get_note_by_id but includes soft-deleted rows, since deletions must sync too."""
        cursor = self.execute_query("SELECT * FROM notes_cache WHERE id = ?", (note_id,))
        row = cursor.fetchone()
        return Note.from_row(row) if row else None

    def list_notes_by_status(self, status: SyncStatus) -> List[Note]:
        """
        Notes with the given status, including soft-deleted ones.
        Pending notes come oldest local edit first (push order); others newest first.
        """
        status = SyncStatus(status)
        direction = "ASC" if status == SyncStatus.PENDING else "DESC"
        cursor = self.execute_query(
            f"SELECT * FROM notes_cache WHERE sync_status = ? ORDER BY local_updated_at {direction}, rowid {direction}",
            (status.value,))
        return [Note.from_row(row) for row in cursor.fetchall()]

    def count_notes_by_status(self, status: SyncStatus) -> int:
        row = self.execute_query("SELECT COUNT(*) AS n FROM notes_cache WHERE sync_status = ?",
                                 (SyncStatus(status).value,)).fetchone()
        return row['n'] if row else 0

    def get_synced_note_ids(self) -> List[str]:
        """Ids of notes last known to match the server; the basis for remote-deletion detection."""
        cursor = self.execute_query("SELECT id FROM notes_cache WHERE sync_status = 'synced' AND is_deleted = 0")
        return [row['id'] for row in cursor.fetchall()]

    def is_empty(self) -> bool:
        row = self.execute_query("SELECT EXISTS(SELECT 1 FROM notes_cache) AS has_rows").fetchone()
        return not row['has_rows']

    def resolve_note_id(self, note_id: str) -> str:
        """Returns the server id for a temporary id that has been replaced, else the id unchanged."""
        row = self.execute_query("SELECT server_id FROM note_id_aliases WHERE local_id = ?", (note_id,)).fetchone()
        return row['server_id'] if row else note_id

    # --- Local (optimistic) writes ---
    def insert_local_note(self, fields: NoteFields, note_id: Optional[str] = None) -> Note:
        """Inserts a note created on this device. It starts out `pending`."""
        final_id = note_id or self._generate_uuid()
        now = utc_now_iso()

        def work(conn: sqlite3.Connection) -> Note:
            try:
                conn.execute(
                    """INSERT INTO notes_cache (id, title, body, tags, updated_at, local_updated_at,
                                                creation_time, sync_status, is_deleted)
                       VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', 0)""",
                    (final_id, fields.title, fields.body, json.dumps(fields.tags), now, now, now))
            except sqlite3.IntegrityError as e:
                raise NotesCacheDBError(f"Note with ID '{final_id}' already exists: {e}") from e
            return self._fetch_note(conn, final_id, include_deleted=False)

        note = self._run_write(f"insert note '{fields.title}'", work)
        logger.info(f"Added local note '{fields.title}' with ID: {final_id}.")
        return note

    def update_local_note(self, note_id: str, update: NoteUpdate) -> Note:
        """Applies the present fields of `update` and marks the note `pending`."""
        if update.is_empty():
            raise InputError("No data provided for note update.")
        columns = note_update_to_columns(update)
        now = utc_now_iso()
        set_clause = ", ".join(f"{column} = ?" for column in columns)
        query = (f"UPDATE notes_cache SET {set_clause}, updated_at = ?, local_updated_at = ?, "
                 f"sync_status = 'pending' WHERE id = ? AND is_deleted = 0")
        params = (*columns.values(), now, now, note_id)

        def work(conn: sqlite3.Connection) -> Note:
            if conn.execute(query, params).rowcount == 0:
                raise NoteNotFoundError(note_id)
            return self._fetch_note(conn, note_id, include_deleted=False)

        note = self._run_write(f"update note {note_id}", work)
        logger.info(f"Updated local note {note_id} fields {sorted(columns)}.")
        return note

    def soft_delete_note(self, note_id: str) -> None:
        """Marks the note deleted and `pending`; the row stays until the server acknowledges."""
        now = utc_now_iso()

        def work(conn: sqlite3.Connection):
            cursor = conn.execute(
                "UPDATE notes_cache SET is_deleted = 1, sync_status = 'pending', local_updated_at = ? "
                "WHERE id = ? AND is_deleted = 0", (now, note_id))
            if cursor.rowcount == 0:
                if self._fetch_note(conn, note_id, include_deleted=True):
                    logger.info(f"Note {note_id} already soft-deleted.")
                    return
                raise NoteNotFoundError(note_id)

        self._run_write(f"soft delete note {note_id}", work)
        logger.info(f"Soft-deleted note {note_id}.")

    # --- Sync-driven writes ---
    def hard_delete_note(self, note_id: str) -> bool:
        """Irreversibly removes the row. Only for acknowledged deletions or replaced temporary ids."""
        deleted = self._run_write(
            f"hard delete note {note_id}",
            lambda conn: conn.execute("DELETE FROM notes_cache WHERE id = ?", (note_id,)).rowcount)
        if deleted:
            logger.info(f"Hard-deleted note {note_id}.")
        return bool(deleted)

    @staticmethod
    def _upsert_remote(conn: sqlite3.Connection, remote: "RemoteNote"):
        conn.execute(
            """INSERT INTO notes_cache (id, title, body, tags, updated_at, local_updated_at, creation_time,
                                        sync_status, is_deleted, last_sync_error)
               VALUES (?, ?, ?, ?, ?, ?, ?, 'synced', 0, NULL)
               ON CONFLICT(id) DO UPDATE SET
                 title = excluded.title,
                 body = excluded.body,
                 tags = excluded.tags,
                 updated_at = excluded.updated_at,
                 local_updated_at = excluded.local_updated_at,
                 sync_status = 'synced',
                 is_deleted = 0,
                 last_sync_error = NULL""",
            (remote.id, remote.title, remote.body, json.dumps(list(remote.tags)), remote.updated_at,
             remote.updated_at, remote.updated_at))

    def upsert_note_from_server(self, remote: "RemoteNote") -> None:
        """Stores the server's version of a note as `synced` (idempotent; un-deletes)."""
        self._run_write(f"upsert note {remote.id} from server", lambda conn: self._upsert_remote(conn, remote))
        logger.debug(f"Upserted note {remote.id} from server.")

    def update_sync_status(self, note_id: str, status: SyncStatus, error: Optional[str] = None,
                           expected_local_updated_at: Optional[str] = None) -> bool:
        """
        Sets the sync status (and last_sync_error) of a note.

        With `expected_local_updated_at`, the status is only changed if the note has
        not been edited locally since that stamp was read; a push that raced a newer
        local edit must not mark the newer content as synced.
        """
        status = SyncStatus(status)
        query = "UPDATE notes_cache SET sync_status = ?, last_sync_error = ? WHERE id = ?"
        params: tuple = (status.value, error if status == SyncStatus.FAILED else None, note_id)
        if expected_local_updated_at is not None:
            query += " AND local_updated_at = ?"
            params += (expected_local_updated_at,)
        changed = self._run_write(f"update sync status of note {note_id}",
                                  lambda conn: conn.execute(query, params).rowcount)
        if not changed and expected_local_updated_at is not None:
            logger.info(f"Note {note_id} was edited during sync; leaving it {SyncStatus.PENDING.value}.")
        return bool(changed)

    def reset_failed_to_pending(self) -> int:
        count = self._run_write(
            "reset failed notes",
            lambda conn: conn.execute("UPDATE notes_cache SET sync_status = 'pending', last_sync_error = NULL "
                                      "WHERE sync_status = 'failed'").rowcount)
        if count:
            logger.info(f"Reset {count} failed note(s) to pending.")
        return count

    def replace_local_id(self, local_id: str, remote: "RemoteNote",
                         expected_local_updated_at: Optional[str] = None,
                         keep_local_content: bool = False) -> Note:
        """
        Swaps a temporary client id for the id the server assigned on create: the
        temporary row is hard-deleted and the server representation stored, in one
        transaction that also records the alias. If the row was edited while the
        create was in flight (or `keep_local_content` is set because later queued
        edits have not been replayed yet), the local content is kept under the
        server id and left `pending`.
        """
        def work(conn: sqlite3.Connection) -> Note:
            local = self._fetch_note(conn, local_id, include_deleted=True)
            edited_in_flight = (local is not None and expected_local_updated_at is not None
                                and local.local_updated_at != expected_local_updated_at)
            if local_id != remote.id:
                conn.execute("DELETE FROM notes_cache WHERE id = ?", (local_id,))
                # older temporary ids that pointed at local_id follow it to the new id
                conn.execute("UPDATE note_id_aliases SET server_id = ? WHERE server_id = ?", (remote.id, local_id))
                conn.execute("INSERT OR REPLACE INTO note_id_aliases(local_id, server_id, created_at) VALUES (?, ?, ?)",
                             (local_id, remote.id, utc_now_iso()))
            self._upsert_remote(conn, remote)
            if local is not None and (edited_in_flight or keep_local_content):
                conn.execute(
                    """UPDATE notes_cache SET title = ?, body = ?, tags = ?, local_updated_at = ?,
                              is_deleted = ?, sync_status = 'pending' WHERE id = ?""",
                    (local.title, local.body, json.dumps(local.tags), local.local_updated_at,
                     int(local.is_deleted), remote.id))
            return self._fetch_note(conn, remote.id, include_deleted=True)

        note = self._run_write(f"replace local id {local_id} with {remote.id}", work)
        logger.info(f"Replaced temporary note id {local_id} with server id {remote.id}.")
        return note


# --- Transaction Context Manager Class (Helper for `with db.transaction():`) ---
class TransactionContextManager:
    def __init__(self, db_instance: NotesCacheDB):
        self.db = db_instance
        self.conn: Optional[sqlite3.Connection] = None
        self.is_outermost_transaction = False

    def __enter__(self) -> sqlite3.Connection:
        self.conn = self.db.get_connection()
        if not self.conn.in_transaction:
            self.conn.execute("BEGIN IMMEDIATE")
            self.is_outermost_transaction = True
            logger.debug(f"Transaction started (outermost) on thread {threading.get_ident()}.")
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.is_outermost_transaction:
            return False

        if exc_type:
            logger.debug(f"Transaction failed, rolling back: {exc_type.__name__} - {exc_val}")
            try:
                self.conn.rollback()
            except sqlite3.Error as rb_err:
                logger.critical(f"Rollback FAILED on thread {threading.get_ident()}: {rb_err}", exc_info=True)
            return False

        try:
            self.conn.commit()
        except sqlite3.Error as commit_err:
            logger.error(f"Commit FAILED on thread {threading.get_ident()}, rolling back: {commit_err}", exc_info=True)
            try:
                self.conn.rollback()
            except sqlite3.Error as rb_err:
                logger.critical(f"Rollback after failed commit also FAILED: {rb_err}", exc_info=True)
            raise NotesCacheDBError(f"Commit failed: {commit_err}") from commit_err
        return False

#
# End of Notes_Cache_DB.py
#######################################################################################################################
