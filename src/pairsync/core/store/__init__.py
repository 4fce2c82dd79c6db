"""pairsync Core Store -- 本地偏好的 SQLite 持久化"""

from pathlib import Path

import aiosqlite

from .preference_store import SqlitePreferenceStore
from .sqlite_init import init_db


async def open_preference_store(db_path: str) -> SqlitePreferenceStore:
    """打开（必要时创建）偏好数据库

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        SqlitePreferenceStore 实例，调用方负责关闭 store.conn
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)
    return SqlitePreferenceStore(conn)


__all__ = [
    "SqlitePreferenceStore",
    "init_db",
    "open_preference_store",
]
