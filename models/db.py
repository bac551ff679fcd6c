from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.dialects import postgresql, sqlite

db = SQLAlchemy()


def upsert_insert(model):
    """
    Returns a dialect INSERT that supports ON CONFLICT for the bound engine,
    or None when the dialect has no upsert (callers fall back to select+insert).
    """
    name = db.session.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(model)
    if name == "sqlite":
        return sqlite.insert(model)
    return None
