"""SQLite persistence: a single file, no setup.

Each record is stored as its JSON document plus the columns needed for
lookups. ``version`` backs compare-and-swap updates in ``offerdesk.store``.
"""
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from offerdesk.config import get_settings
from offerdesk.errors import wrap_store_error

SCHEMA = """\
CREATE TABLE IF NOT EXISTS properties(
  id TEXT PRIMARY KEY, seller_id TEXT, status TEXT DEFAULT 'active',
  data TEXT DEFAULT '{}', version INTEGER DEFAULT 0
);
CREATE TABLE IF NOT EXISTS offers(
  seq INTEGER PRIMARY KEY AUTOINCREMENT,
  id TEXT UNIQUE NOT NULL,
  property_id TEXT NOT NULL, buyer_id TEXT NOT NULL,
  offer_type TEXT NOT NULL, status TEXT DEFAULT 'pending',
  counter_to_offer_id TEXT, countered_by_offer_id TEXT,
  data TEXT DEFAULT '{}', version INTEGER DEFAULT 0,
  created TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS offers_property ON offers(property_id);
CREATE INDEX IF NOT EXISTS offers_buyer ON offers(buyer_id);
CREATE TABLE IF NOT EXISTS transactions(
  id TEXT PRIMARY KEY,
  offer_id TEXT UNIQUE NOT NULL,
  property_id TEXT, offer_type TEXT DEFAULT 'psa',
  parties TEXT DEFAULT '[]', accepted_at TEXT,
  data TEXT DEFAULT '{}', version INTEGER DEFAULT 0
);
CREATE TABLE IF NOT EXISTS vendors(
  id TEXT PRIMARY KEY, owner_id TEXT, type TEXT DEFAULT 'other',
  data TEXT DEFAULT '{}'
);
CREATE TABLE IF NOT EXISTS psa_drafts(
  id TEXT PRIMARY KEY, property_id TEXT, buyer_id TEXT,
  source_loi_offer_id TEXT, data TEXT DEFAULT '{}', updated TEXT
);
CREATE TABLE IF NOT EXISTS audit(
  id INTEGER PRIMARY KEY AUTOINCREMENT, entity TEXT,
  action TEXT, detail TEXT,
  ts TEXT DEFAULT(strftime('%Y-%m-%dT%H:%M:%fZ','now'))
);"""


def db_path() -> Path:
    return get_settings().db_path


@contextmanager
def conn(path: Path | None = None):
    """Open the store; commit on success, roll back on any error."""
    target = Path(path) if path else None
    try:
        target = target or db_path()
        target.parent.mkdir(parents=True, exist_ok=True)
        c = sqlite3.connect(str(target), timeout=5.0)
    except (sqlite3.Error, OSError) as e:
        raise wrap_store_error(e, {"db": str(target or get_settings().data_dir)}) from e
    c.row_factory = sqlite3.Row
    try:
        c.executescript(SCHEMA)
        yield c
        c.commit()
    except sqlite3.Error as e:
        c.rollback()
        raise wrap_store_error(e, {"db": str(target)}) from e
    except BaseException:
        c.rollback()
        raise
    finally:
        c.close()


def log(c, entity: str, action: str, detail: str = ""):
    c.execute("INSERT INTO audit(entity,action,detail) VALUES(?,?,?)", (entity, action, detail))


def audit_trail(c, entity: str) -> list[dict]:
    rows = c.execute("SELECT * FROM audit WHERE entity=? ORDER BY id", (entity,)).fetchall()
    return [dict(r) for r in rows]
