"""SQLite 数据库初始化 -- 偏好表

PRAGMA 配置 + preferences 表 DDL。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# preferences 表 DDL：按参与者隔离的键值对
_PREFERENCES_DDL = """
CREATE TABLE IF NOT EXISTS preferences (
    principal   TEXT NOT NULL,
    pref_key    TEXT NOT NULL,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL,

    PRIMARY KEY (principal, pref_key)
);
"""


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表（幂等）

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA busy_timeout = 5000;")
    await conn.execute(_PREFERENCES_DDL)
    await conn.commit()
