"""PreferenceStore SQLite 实现

替代浏览器 localStorage：主题模式与配色按参与者持久化。
存储的值损坏或不再是合法预设时回退到默认值。
"""

from datetime import UTC, datetime

import aiosqlite
import structlog

from ..models import DEFAULT_COLOR_THEME, THEME_PRESETS, ThemeMode, ThemePreference

log = structlog.get_logger()

THEME_MODE_KEY = "theme_mode"
COLOR_THEME_KEY = "color_theme"


class SqlitePreferenceStore:
    """偏好键值存储"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn

    async def get(self, principal: str, key: str) -> str | None:
        cursor = await self.conn.execute(
            "SELECT value FROM preferences WHERE principal = ? AND pref_key = ?",
            (principal, key),
        )
        row = await cursor.fetchone()
        return row[0] if row is not None else None

    async def set(self, principal: str, key: str, value: str) -> None:
        await self.conn.execute(
            """
            INSERT INTO preferences (principal, pref_key, value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (principal, pref_key)
            DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (principal, key, value, datetime.now(UTC).isoformat()),
        )
        await self.conn.commit()

    async def load_theme(self, principal: str) -> ThemePreference:
        """读取主题偏好，缺失或非法值使用默认值"""
        mode_raw = await self.get(principal, THEME_MODE_KEY)
        color_raw = await self.get(principal, COLOR_THEME_KEY)

        mode = ThemeMode.SYSTEM
        if mode_raw is not None:
            try:
                mode = ThemeMode(mode_raw)
            except ValueError:
                log.warning("invalid_stored_preference", principal=principal, key=THEME_MODE_KEY)

        color_theme = DEFAULT_COLOR_THEME
        if color_raw is not None:
            if color_raw in THEME_PRESETS:
                color_theme = color_raw
            else:
                log.warning(
                    "invalid_stored_preference", principal=principal, key=COLOR_THEME_KEY
                )

        return ThemePreference(mode=mode, color_theme=color_theme)

    async def save_theme(self, principal: str, preference: ThemePreference) -> None:
        await self.set(principal, THEME_MODE_KEY, preference.mode.value)
        await self.set(principal, COLOR_THEME_KEY, preference.color_theme)
