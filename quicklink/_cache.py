"""
Cache management for QuickLink.

Provides LinkCache, the SQLite database holding captured link invocations,
and CachedLink, the reconstructed view of one invocation used at replay time.

Schema:
    tag_set                  canonical JSON tag array, unique
    link_invocation          (program, tag_set) unique, optional entry artifact
    link_argument            ordered arguments, literal token or placeholder
    artifact                 (package, file), file unique, shared by invocations
    link_invocation_artifact which artifacts an invocation's manifest lists
    manifest_line            other manifest lines, verbatim, unordered
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ._errors import CacheStorageError, TraceFormatError
from ._fingerprint import Fingerprint
from ._link_args import LinkArgument, Placeholder, split_link_command
from ._trace import BuildTrace, PACKAGEFILE_DIRECTIVE, is_packagefile_line
from ._type_check import typecheck_methods


SCHEMA = [
    """
CREATE TABLE IF NOT EXISTS tag_set (
    tag_set_id INTEGER PRIMARY KEY AUTOINCREMENT,
    tags       TEXT    NOT NULL UNIQUE
)""",
    """
CREATE TABLE IF NOT EXISTS artifact (
    artifact_id INTEGER PRIMARY KEY AUTOINCREMENT,
    package     TEXT    NOT NULL,
    file        TEXT    NOT NULL UNIQUE
)""",
    """
CREATE TABLE IF NOT EXISTS link_invocation (
    link_invocation_id INTEGER PRIMARY KEY AUTOINCREMENT,
    program            TEXT    NOT NULL,
    tag_set_id         INTEGER NOT NULL,
    entry_artifact_id  INTEGER,
    UNIQUE (program, tag_set_id),
    FOREIGN KEY (tag_set_id) REFERENCES tag_set(tag_set_id),
    FOREIGN KEY (entry_artifact_id) REFERENCES artifact(artifact_id)
)""",
    """
CREATE TABLE IF NOT EXISTS link_argument (
    link_invocation_id INTEGER NOT NULL,
    pos                INTEGER NOT NULL,
    token              TEXT    NOT NULL,
    placeholder        TEXT    CHECK (placeholder IN ('OUTPUT_PATH', 'IMPORTCFG_PATH', 'MAIN_PACKAGE')),
    PRIMARY KEY (link_invocation_id, pos),
    FOREIGN KEY (link_invocation_id) REFERENCES link_invocation(link_invocation_id)
)""",
    """
CREATE TABLE IF NOT EXISTS link_invocation_artifact (
    link_invocation_id INTEGER NOT NULL,
    artifact_id        INTEGER NOT NULL,
    PRIMARY KEY (link_invocation_id, artifact_id),
    FOREIGN KEY (link_invocation_id) REFERENCES link_invocation(link_invocation_id),
    FOREIGN KEY (artifact_id) REFERENCES artifact(artifact_id)
)""",
    """
CREATE TABLE IF NOT EXISTS manifest_line (
    link_invocation_id INTEGER NOT NULL,
    line               TEXT    NOT NULL,
    PRIMARY KEY (link_invocation_id, line),
    FOREIGN KEY (link_invocation_id) REFERENCES link_invocation(link_invocation_id)
)""",
]


def insert_or_get_id(cursor: sqlite3.Cursor, table: str, id_column: str,
                     values: Dict[str, object], key_columns: Tuple[str, ...]) -> int:
    """Insert a row unless it violates a uniqueness constraint, and return its id either way.
    Args:    cursor: Cursor inside an open write transaction
             table: Table name
             id_column: Integer primary key column
             values: Column -> value for the new row
             key_columns: Columns of the unique constraint used to find an existing row
    Returns: Id of the inserted or already existing row"""
    columns = ", ".join(values)
    params = ", ".join("?" for _ in values)
    cursor.execute(f"INSERT INTO {table} ({columns}) VALUES ({params}) ON CONFLICT DO NOTHING",
                   tuple(values.values()))
    if cursor.rowcount == 1:
        return cursor.lastrowid

    where = " AND ".join(f"{column} = ?" for column in key_columns)
    row = cursor.execute(f"SELECT {id_column} FROM {table} WHERE {where}",
                         tuple(values[column] for column in key_columns)).fetchone()
    if row is None:
        raise sqlite3.IntegrityError(f"{table} row {values} was neither inserted nor found")
    return row[0]


def parse_packagefile_line(line: str) -> Tuple[str, str]:
    """Split `packagefile NAME=FILE` into (NAME, FILE). Either side may be empty.
    Raises:  TraceFormatError if the line has no '='"""
    directive, _, argument = line.partition(" ")
    package, sep, file_path = argument.partition("=")
    if directive != PACKAGEFILE_DIRECTIVE or not sep:
        raise TraceFormatError(f"invalid packagefile line in link manifest: {line!r}")
    return package, file_path


@typecheck_methods
class CachedLink:
    """Everything needed to replay one cached link invocation."""

    def __init__(self, invocation_id: int, fingerprint: Fingerprint, arguments: List[LinkArgument],
                 main_package: Optional[str], artifacts: List[Tuple[str, str]], manifest_lines: List[str]):
        """Args:    invocation_id: Row id in link_invocation
                 fingerprint: Fingerprint the invocation was found under
                 arguments: Arguments ordered by position
                 main_package: File of the entry artifact, None if none was identified
                 artifacts: (package, file) pairs listed in the manifest
                 manifest_lines: Non-packagefile manifest lines"""
        self.invocation_id = invocation_id
        self.fingerprint = fingerprint
        self.arguments = arguments
        self.main_package = main_package
        self.artifacts = artifacts
        self.manifest_lines = manifest_lines

    def manifest(self) -> List[str]:
        """Lines of the importcfg.link manifest for this invocation."""
        lines = [f"{PACKAGEFILE_DIRECTIVE} {package}={file_path}" for package, file_path in self.artifacts]
        return lines + self.manifest_lines

    def __repr__(self):
        return (f"CachedLink({self.fingerprint!r}, {len(self.arguments)} arguments, "
                f"{len(self.artifacts)} artifacts, main package: {self.main_package})")


@typecheck_methods
class CacheEntrySummary:
    """Size of one cached link invocation, for statistics."""

    def __init__(self, fingerprint: Fingerprint, arguments: int, artifacts: int, manifest_lines: int):
        self.fingerprint = fingerprint
        self.arguments = arguments
        self.artifacts = artifacts
        self.manifest_lines = manifest_lines


@typecheck_methods
class LinkCache:
    """SQLite store of captured link invocations.

    Capture writes through store() in a single immediate transaction; replay
    reads through lookup() on a read-only connection inside one transaction,
    so it always sees a consistent snapshot. Nothing here serializes two
    captures of the same fingerprint beyond SQLite's own write lock.
    """

    def __init__(self, db_path: Path, logger=None):
        self.db_path = Path(db_path)
        self.logger = logger or logging.getLogger("QuickLink")

    def _connect(self, read_only: bool) -> sqlite3.Connection:
        mode = "ro" if read_only else "rwc"
        uri = f"{self.db_path.absolute().as_uri()}?mode={mode}"
        # Transactions are issued explicitly
        conn = sqlite3.connect(uri, uri=True, isolation_level=None)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self, read_only: bool):
        """Yield a cursor inside a transaction.
        Read-only transactions always roll back. Write transactions commit on
        success and roll back on any exception, so a failed capture leaves
        nothing behind."""
        if not read_only:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect(read_only)
        try:
            cursor = conn.cursor()
            cursor.execute("BEGIN" if read_only else "BEGIN IMMEDIATE")
            try:
                yield cursor
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("ROLLBACK" if read_only else "COMMIT")
        finally:
            conn.close()

    def store(self, fingerprint: Fingerprint, trace: BuildTrace) -> List[int]:
        """Store every link command of a trace under a fingerprint.
        An already cached fingerprint keeps its invocation id; its arguments,
        artifacts and manifest lines are replaced by the new capture.
        Args:    fingerprint: Program name and build tags
                 trace: Parsed build trace
        Returns: Invocation ids, one per link command
        Raises:  TraceFormatError on a malformed manifest, CacheStorageError on database failures"""
        if len(trace.link_commands) > 1:
            self.logger.warning(f"{len(trace.link_commands)} link commands found for {fingerprint}, "
                                f"the last one is kept")
        try:
            # Schema is committed separately: a rolled back capture leaves an empty, valid cache
            with self._transaction(read_only=False) as cursor:
                for statement in SCHEMA:
                    cursor.execute(statement)

            with self._transaction(read_only=False) as cursor:
                tag_set_id = insert_or_get_id(cursor, "tag_set", "tag_set_id",
                                              {"tags": fingerprint.canonical_tags}, ("tags",))

                return [
                    self._store_link_command(cursor, fingerprint, tag_set_id, command, trace.staged_files)
                    for command in trace.link_commands
                ]
        except sqlite3.Error as e:
            raise CacheStorageError(f"store link invocation for {fingerprint} in {self.db_path}", e) from e

    def _store_link_command(self, cursor: sqlite3.Cursor, fingerprint: Fingerprint, tag_set_id: int,
                            command: str, staged_files: Dict[str, List[str]]) -> int:
        invocation_id = insert_or_get_id(cursor, "link_invocation", "link_invocation_id",
                                         {"program": fingerprint.program, "tag_set_id": tag_set_id},
                                         ("program", "tag_set_id"))
        self._clear_invocation(cursor, invocation_id)

        split = split_link_command(command)
        cursor.executemany(
            "INSERT INTO link_argument (link_invocation_id, pos, token, placeholder) VALUES (?, ?, ?, ?)",
            [(invocation_id, arg.position, arg.token, arg.placeholder) for arg in split.arguments])

        if split.importcfg is None:
            self.logger.warning(f"Link command for {fingerprint} has no -importcfg argument, no manifest stored")
            manifest = []
        elif split.importcfg not in staged_files:
            raise TraceFormatError(f"link manifest {split.importcfg} is not staged in the build trace")
        else:
            manifest = staged_files[split.importcfg]

        artifact_count = 0
        for line in manifest:
            if is_packagefile_line(line):
                package, file_path = parse_packagefile_line(line)
                artifact_id = insert_or_get_id(cursor, "artifact", "artifact_id",
                                               {"package": package, "file": file_path}, ("file",))
                cursor.execute(
                    "INSERT OR IGNORE INTO link_invocation_artifact (link_invocation_id, artifact_id) VALUES (?, ?)",
                    (invocation_id, artifact_id))
                artifact_count += 1
            else:
                cursor.execute("INSERT OR IGNORE INTO manifest_line (link_invocation_id, line) VALUES (?, ?)",
                               (invocation_id, line))

        main_package = self._tag_entry_artifact(cursor, invocation_id, split.last_token)
        self.logger.info(f"Stored link command for {fingerprint}: {len(split.arguments)} arguments, "
                         f"{artifact_count} package files, main package: {main_package}")
        return invocation_id

    def _clear_invocation(self, cursor: sqlite3.Cursor, invocation_id: int):
        cursor.execute("UPDATE link_invocation SET entry_artifact_id = NULL WHERE link_invocation_id = ?",
                       (invocation_id,))
        for table in ("link_argument", "link_invocation_artifact", "manifest_line"):
            cursor.execute(f"DELETE FROM {table} WHERE link_invocation_id = ?", (invocation_id,))

    def _tag_entry_artifact(self, cursor: sqlite3.Cursor, invocation_id: int,
                            last_token: Optional[str]) -> Optional[str]:
        """Mark the artifact named by the final argument as the invocation's main package."""
        if last_token is None:
            return None
        row = cursor.execute("SELECT artifact_id FROM artifact WHERE file = ?", (last_token,)).fetchone()
        if row is None:
            return None

        cursor.execute("UPDATE link_invocation SET entry_artifact_id = ? WHERE link_invocation_id = ?",
                       (row[0], invocation_id))
        cursor.execute("""
UPDATE link_argument
SET placeholder = ?
WHERE link_invocation_id = ?
    AND token = ?
    AND placeholder IS NULL""", (Placeholder.MAIN_PACKAGE, invocation_id, last_token))
        return last_token

    def _has_schema(self, cursor: sqlite3.Cursor) -> bool:
        """Check whether the database holds the link cache tables (an empty file does not)."""
        row = cursor.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'link_invocation'").fetchone()
        if row is None:
            self.logger.debug(f"Cache file {self.db_path} has no link cache tables")
        return row is not None

    def lookup(self, fingerprint: Fingerprint) -> Optional[CachedLink]:
        """Look up the cached link invocation for a fingerprint.
        A missing cache file, or one without the cache tables, is a miss like any other.
        Returns: CachedLink if found, None otherwise
        Raises:  CacheStorageError on database failures"""
        if not self.db_path.exists():
            self.logger.debug(f"Cache file {self.db_path} does not exist")
            return None

        try:
            with self._transaction(read_only=True) as cursor:
                if not self._has_schema(cursor):
                    return None
                row = cursor.execute("""
SELECT link_invocation_id, artifact.file
FROM link_invocation
JOIN tag_set USING (tag_set_id)
LEFT JOIN artifact ON link_invocation.entry_artifact_id = artifact.artifact_id
WHERE program = ? AND tags = ?""", (fingerprint.program, fingerprint.canonical_tags)).fetchone()
                if row is None:
                    return None
                invocation_id, main_package = row

                arguments = [
                    LinkArgument(pos, token, placeholder)
                    for pos, token, placeholder in cursor.execute("""
SELECT pos, token, placeholder
FROM link_argument
WHERE link_invocation_id = ?
ORDER BY pos""", (invocation_id,))
                ]

                artifacts = [
                    (package, file_path)
                    for package, file_path in cursor.execute("""
SELECT package, file
FROM artifact
JOIN link_invocation_artifact USING (artifact_id)
WHERE link_invocation_id = ?
ORDER BY package, file""", (invocation_id,))
                ]

                manifest_lines = [
                    line for (line,) in cursor.execute(
                        "SELECT line FROM manifest_line WHERE link_invocation_id = ? ORDER BY line",
                        (invocation_id,))
                ]
        except sqlite3.Error as e:
            raise CacheStorageError(f"look up link invocation for {fingerprint} in {self.db_path}", e) from e

        return CachedLink(invocation_id, fingerprint, arguments, main_package, artifacts, manifest_lines)

    def entries(self) -> List[CacheEntrySummary]:
        """List all cached fingerprints with the size of their invocation."""
        if not self.db_path.exists():
            return []

        try:
            with self._transaction(read_only=True) as cursor:
                if not self._has_schema(cursor):
                    return []
                rows = cursor.execute("""
SELECT program, tags,
    (SELECT COUNT(*) FROM link_argument a WHERE a.link_invocation_id = li.link_invocation_id),
    (SELECT COUNT(*) FROM link_invocation_artifact ia WHERE ia.link_invocation_id = li.link_invocation_id),
    (SELECT COUNT(*) FROM manifest_line m WHERE m.link_invocation_id = li.link_invocation_id)
FROM link_invocation li
JOIN tag_set USING (tag_set_id)
ORDER BY program, tags""").fetchall()
        except sqlite3.Error as e:
            raise CacheStorageError(f"list cached link invocations in {self.db_path}", e) from e

        return [
            CacheEntrySummary(Fingerprint(program, json.loads(tags)), arguments, artifacts, manifest_lines)
            for program, tags, arguments, artifacts, manifest_lines in rows
        ]

    def remove(self, fingerprints: List[Fingerprint]) -> int:
        """Delete the cached invocations of the given fingerprints.
        Artifacts no longer referenced by any invocation are deleted too.
        Returns: Number of invocations deleted"""
        if not self.db_path.exists() or not fingerprints:
            return 0

        try:
            with self._transaction(read_only=False) as cursor:
                if not self._has_schema(cursor):
                    return 0
                removed = 0
                for fingerprint in fingerprints:
                    row = cursor.execute("""
SELECT link_invocation_id
FROM link_invocation
JOIN tag_set USING (tag_set_id)
WHERE program = ? AND tags = ?""", (fingerprint.program, fingerprint.canonical_tags)).fetchone()
                    if row is None:
                        continue
                    self._clear_invocation(cursor, row[0])
                    cursor.execute("DELETE FROM link_invocation WHERE link_invocation_id = ?", (row[0],))
                    removed += 1

                cursor.execute("""
DELETE FROM artifact
WHERE artifact_id NOT IN (SELECT artifact_id FROM link_invocation_artifact)
    AND artifact_id NOT IN (SELECT entry_artifact_id FROM link_invocation WHERE entry_artifact_id IS NOT NULL)""")
        except sqlite3.Error as e:
            raise CacheStorageError(f"remove cached link invocations from {self.db_path}", e) from e

        self.logger.info(f"Removed {removed} cached link invocations from {self.db_path}")
        return removed

    def clear(self) -> int:
        """Delete every cached invocation.
        Returns: Number of invocations deleted"""
        return self.remove([entry.fingerprint for entry in self.entries()])
