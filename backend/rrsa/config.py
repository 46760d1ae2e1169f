# backend/rrsa/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/rrsa.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///rrsa.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Where the single persisted document lives: "sql", "file" or "memory"
    RRSA_DOCUMENT_BACKEND = os.environ.get("RRSA_DOCUMENT_BACKEND", "sql")
    RRSA_DOCUMENT_PATH = os.environ.get("RRSA_DOCUMENT_PATH", "rrsa_document.json")
    RRSA_DOCUMENT_NAMESPACE = os.environ.get("RRSA_DOCUMENT_NAMESPACE", "rrsa")

    # Run the migrator when the app is created
    RRSA_INIT_ON_STARTUP = True
