from __future__ import annotations

import contextlib
import uuid

import psycopg2
from psycopg2.extras import RealDictCursor

from fuyugyo.config import get_database_url


def new_id() -> str:
    return uuid.uuid4().hex


@contextlib.contextmanager
def get_conn():
    conn = psycopg2.connect(get_database_url())
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextlib.contextmanager
def get_cursor(conn):
    with conn.cursor(cursor_factory=RealDictCursor) as cursor:
        yield cursor


@contextlib.contextmanager
def transaction():
    """Open a connection and a dict cursor; commits when the block exits cleanly."""
    with get_conn() as conn:
        with get_cursor(conn) as cursor:
            yield cursor
