"""SQLite persistence for the profile store and gossip-tracking ledger."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from common.logging_config import get_logger
from common.types import Character, Profile
from peer.config import DATABASE_PATH
from peer.store import ProfileStore

logger = get_logger(__name__)

SCHEMA_VERSION = 1


def init_database(db_path: Optional[str] = None) -> None:
    """
    Initialize database and create tables if they don't exist.
    """
    path = Path(db_path or DATABASE_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)

    with get_db_connection(str(path)) as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS profiles (
                battle_tag TEXT PRIMARY KEY,
                alias TEXT NOT NULL,
                alias_updated_at INTEGER NOT NULL,
                chars_updated_at INTEGER NOT NULL,
                is_mine INTEGER NOT NULL DEFAULT 0
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS characters (
                battle_tag TEXT NOT NULL,
                name TEXT NOT NULL,
                realm TEXT NOT NULL,
                added_at INTEGER NOT NULL,
                PRIMARY KEY(battle_tag, name, realm),
                FOREIGN KEY(battle_tag) REFERENCES profiles(battle_tag) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS gossip_tracking (
                target TEXT NOT NULL,
                battle_tag TEXT NOT NULL,
                alias_updated_at INTEGER NOT NULL,
                chars_updated_at INTEGER NOT NULL,
                chars_count INTEGER NOT NULL,
                PRIMARY KEY(target, battle_tag)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_characters_name ON characters(name)
        """)

        cursor.execute("SELECT version FROM schema_version")
        if cursor.fetchone() is None:
            cursor.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

        conn.commit()


@contextmanager
def get_db_connection(db_path: Optional[str] = None) -> Generator[sqlite3.Connection, None, None]:
    """
    Context manager for database connections.
    """
    conn = sqlite3.connect(db_path or DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def _insert_profile(cursor: sqlite3.Cursor, profile: Profile, is_mine: bool) -> None:
    cursor.execute("""
        INSERT INTO profiles (battle_tag, alias, alias_updated_at, chars_updated_at, is_mine)
        VALUES (?, ?, ?, ?, ?)
    """, (profile.battle_tag, profile.alias, profile.alias_updated_at,
          profile.chars_updated_at, 1 if is_mine else 0))
    cursor.executemany("""
        INSERT INTO characters (battle_tag, name, realm, added_at)
        VALUES (?, ?, ?, ?)
    """, [(profile.battle_tag, c.name, c.realm, c.added_at) for c in profile.characters.values()])


def save_store(store: ProfileStore, db_path: Optional[str] = None) -> None:
    """
    Replace the persisted state with the store's current contents.

    Args:
        store: Store to persist
        db_path: Database file, defaults to DATABASE_PATH
    """
    init_database(db_path)
    with get_db_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM characters")
        cursor.execute("DELETE FROM profiles")
        cursor.execute("DELETE FROM gossip_tracking")

        my_profile = store.get_my_profile()
        if my_profile is not None:
            _insert_profile(cursor, my_profile, is_mine=True)
        for profile in store.get_all_profiles().values():
            _insert_profile(cursor, profile, is_mine=False)

        rows = [
            (target, battle_tag, entry.au, entry.cu, entry.cc)
            for target, entries in store.get_all_tracking().items()
            for battle_tag, entry in entries.items()
        ]
        cursor.executemany("""
            INSERT INTO gossip_tracking (target, battle_tag, alias_updated_at, chars_updated_at, chars_count)
            VALUES (?, ?, ?, ?, ?)
        """, rows)

        conn.commit()
    logger.debug(f"Saved store [profiles={len(store.get_all_profiles())}, tracking_rows={len(rows)}]")


def load_store(store: ProfileStore, db_path: Optional[str] = None) -> int:
    """
    Load persisted profiles and ledger into a store.

    A missing database file leaves the store empty.

    Args:
        store: Store to fill
        db_path: Database file, defaults to DATABASE_PATH

    Returns:
        Number of cached (third-party) profiles loaded
    """
    path = Path(db_path or DATABASE_PATH)
    if not path.exists():
        logger.info(f"No database found, starting empty [path={path}]")
        return 0

    init_database(str(path))
    with get_db_connection(str(path)) as conn:
        cursor = conn.cursor()

        cursor.execute("""
            SELECT battle_tag, name, realm, added_at FROM characters
        """)
        characters = {}
        for row in cursor.fetchall():
            char = Character(name=row["name"], realm=row["realm"], added_at=row["added_at"])
            characters.setdefault(row["battle_tag"], {})[char.key] = char

        cursor.execute("""
            SELECT battle_tag, alias, alias_updated_at, chars_updated_at, is_mine FROM profiles
        """)
        loaded = 0
        for row in cursor.fetchall():
            profile = Profile(
                battle_tag=row["battle_tag"],
                alias=row["alias"],
                alias_updated_at=row["alias_updated_at"],
                characters=characters.get(row["battle_tag"], {}),
                chars_updated_at=row["chars_updated_at"],
            )
            if row["is_mine"]:
                store.set_my_profile(profile)
            else:
                store.update_profile_alias(profile.battle_tag, profile.alias, profile.alias_updated_at)
                store.add_characters_to_profile(profile.battle_tag, profile.characters.values())
                loaded += 1

        cursor.execute("""
            SELECT target, battle_tag, alias_updated_at, chars_updated_at, chars_count FROM gossip_tracking
        """)
        for row in cursor.fetchall():
            if store.is_me(row["target"]) or store.is_me(row["battle_tag"]):
                continue
            store.update_gossip_tracking(
                row["target"], row["battle_tag"],
                row["alias_updated_at"], row["chars_updated_at"], row["chars_count"],
            )

    logger.info(f"Loaded store [profiles={loaded}]")
    return loaded
