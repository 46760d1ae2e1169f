# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


STORE_KEY = "rrsa.store"


def get_store(app=None):
    """The DocumentStore built by create_app for this app."""
    from flask import current_app
    return (app or current_app).extensions[STORE_KEY]
