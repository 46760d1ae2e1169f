"""
SQL document backend tests (Flask-SQLAlchemy, in-memory SQLite).
"""

import pytest

from rrsa import create_app
from rrsa.extensions import db, get_store
from rrsa.models import StoredDocument
from rrsa.services.document_backends import SqlDocumentBackend, build_backend
from rrsa.services.document_store import dumps
from rrsa.validation import ConcurrentWriteError


@pytest.fixture
def sql_app(clock):
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'RRSA_DOCUMENT_BACKEND': 'sql',
        },
        clock=clock,
    )
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


class TestSqlBackend:
    def test_startup_seeds_one_row(self, sql_app):
        store = get_store(sql_app)
        assert isinstance(store.backend, SqlDocumentBackend)
        rows = db.session.query(StoredDocument).all()
        assert len(rows) == 1
        assert rows[0].namespace == "rrsa"
        assert rows[0].revision == 1
        assert store.get_user("mrv") is not None

    def test_writes_bump_revision(self, sql_app):
        store = get_store(sql_app)
        store.append_audit("mrv", "note", "hello")
        row = db.session.query(StoredDocument).filter_by(namespace="rrsa").one()
        assert row.revision == 2
        assert row.to_dict()["revision"] == 2

    def test_stale_revision_rejected(self, sql_app):
        store = get_store(sql_app)
        text, revision = store.backend.read()
        store.append_audit("mrv", "note", "first")
        with pytest.raises(ConcurrentWriteError):
            store.backend.write(text, revision)
        assert store.list_audit(1)[0]["details"] == "first"

    def test_second_insert_rejected(self, sql_app):
        store = get_store(sql_app)
        with pytest.raises(ConcurrentWriteError):
            store.backend.write(dumps(store.snapshot()), None)

    def test_health_over_sql(self, sql_app):
        resp = sql_app.test_client().get("/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["document"]["details"]["users"] == 9


def test_build_backend_rejects_unknown_kind():
    with pytest.raises(ValueError):
        build_backend({"RRSA_DOCUMENT_BACKEND": "mongo"})
