from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StoredDocument(db.Model):
    """
    The persisted association document, one row per namespace.

    The body is the whole JSON document as text. `revision` is bumped on every
    write and checked by the writer, so two processes writing from the same
    read cannot both succeed.
    """
    __tablename__ = "stored_documents"
    __table_args__ = (
        db.UniqueConstraint("namespace", name="uq_stored_documents_namespace"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    namespace = db.Column(db.String(64), nullable=False, index=True)

    body = db.Column(db.Text, nullable=False)
    revision = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "namespace": self.namespace,
            "revision": self.revision,
            "updated_at": to_utc_z(self.updated_at),
        }
