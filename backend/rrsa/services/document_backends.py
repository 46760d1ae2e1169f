# Overview: Raw read/write backends for the single persisted document, each guarded by a revision tag.

from __future__ import annotations

import fcntl
import hashlib
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Optional, Protocol

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..validation import ConcurrentWriteError


class DocumentBackend(Protocol):
    """
    Read/write contract for the persisted document.

    read() returns (text, revision); text is None when nothing has been stored.
    write(text, expected_revision) persists only if the stored revision still
    equals expected_revision and returns the new revision. Otherwise it raises
    ConcurrentWriteError and leaves storage untouched.
    """

    def read(self) -> tuple[Optional[str], Optional[str]]:
        ...

    def write(self, text: str, expected_revision: Optional[str]) -> str:
        ...


class MemoryDocumentBackend:
    """In-process backend for tests and throwaway runs. Revision is a counter."""

    def __init__(self, text: Optional[str] = None):
        self._lock = threading.Lock()
        self._text = text
        self._counter = 1 if text is not None else 0
        self.writes = 0

    def _revision(self) -> Optional[str]:
        return str(self._counter) if self._text is not None else None

    def read(self) -> tuple[Optional[str], Optional[str]]:
        with self._lock:
            return self._text, self._revision()

    def write(self, text: str, expected_revision: Optional[str]) -> str:
        with self._lock:
            if self._revision() != expected_revision:
                raise ConcurrentWriteError("Document changed since it was read. Reload and try again.")
            self._text = text
            self._counter += 1
            self.writes += 1
            return self._revision()


class FileDocumentBackend:
    """
    JSON file on disk. Revision is the SHA-256 of the file contents.

    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so readers never see a half-written document. The
    revision check and the replace run under an exclusive flock on a sibling
    `.lock` file, so writers in other processes are serialized too.
    """

    def __init__(self, path: str):
        self.path = os.path.abspath(path)
        self.lock_path = self.path + ".lock"
        self._lock = threading.Lock()

    @staticmethod
    def _digest(text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    @contextmanager
    def _exclusive(self):
        with self._lock:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.lock_path, "a") as lock_fh:
                fcntl.flock(lock_fh.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(lock_fh.fileno(), fcntl.LOCK_UN)

    def _read_unlocked(self) -> tuple[Optional[str], Optional[str]]:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                text = fh.read()
        except FileNotFoundError:
            return None, None
        return text, self._digest(text)

    def read(self) -> tuple[Optional[str], Optional[str]]:
        # os.replace is atomic, so a reader never needs the writer lock
        return self._read_unlocked()

    def write(self, text: str, expected_revision: Optional[str]) -> str:
        with self._exclusive():
            _, current = self._read_unlocked()
            if current != expected_revision:
                raise ConcurrentWriteError("Document changed since it was read. Reload and try again.")

            fd, tmp_path = tempfile.mkstemp(prefix=".rrsa-", suffix=".json", dir=os.path.dirname(self.path))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                os.replace(tmp_path, self.path)
            except OSError:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
            return self._digest(text)


class SqlDocumentBackend:
    """
    One stored_documents row per namespace (Flask-SQLAlchemy session).

    The write is a compare-and-swap: UPDATE ... WHERE revision = :expected.
    A first write inserts the row; losing an insert race also surfaces as
    ConcurrentWriteError via the unique namespace constraint.
    Must be used inside an application context.
    """

    def __init__(self, namespace: str = "rrsa"):
        self.namespace = namespace

    def _row(self):
        from ..models import StoredDocument
        return db.session.query(StoredDocument).filter_by(namespace=self.namespace).first()

    def read(self) -> tuple[Optional[str], Optional[str]]:
        row = self._row()
        if row is None:
            return None, None
        text, revision = row.body, str(row.revision)
        # Release the snapshot so the next read sees other writers' commits
        db.session.rollback()
        return text, revision

    def write(self, text: str, expected_revision: Optional[str]) -> str:
        from ..models import StoredDocument

        if expected_revision is None:
            db.session.add(StoredDocument(namespace=self.namespace, body=text, revision=1))
            try:
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                raise ConcurrentWriteError("Document was created by another writer. Reload and try again.")
            return "1"

        try:
            expected = int(expected_revision)
        except ValueError:
            raise ConcurrentWriteError("Unknown document revision. Reload and try again.")

        result = db.session.execute(
            update(StoredDocument)
            .where(StoredDocument.namespace == self.namespace)
            .where(StoredDocument.revision == expected)
            .values(body=text, revision=expected + 1)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise ConcurrentWriteError("Document changed since it was read. Reload and try again.")
        db.session.commit()
        return str(expected + 1)


def build_backend(config) -> DocumentBackend:
    """Pick a backend from app config (RRSA_DOCUMENT_BACKEND)."""
    kind = str(config.get("RRSA_DOCUMENT_BACKEND") or "sql").strip().lower()
    if kind == "memory":
        return MemoryDocumentBackend()
    if kind == "file":
        return FileDocumentBackend(config.get("RRSA_DOCUMENT_PATH") or "rrsa_document.json")
    if kind == "sql":
        return SqlDocumentBackend(config.get("RRSA_DOCUMENT_NAMESPACE") or "rrsa")
    raise ValueError(f"Unknown RRSA_DOCUMENT_BACKEND: {kind!r}")
