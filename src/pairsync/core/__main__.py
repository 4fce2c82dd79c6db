"""CLI 入口模块 -- python -m pairsync.core <command>

支持的命令：
  conversation-id A B                 计算两位参与者的 ConversationId
  other-participant CID SELF          解析会话中的另一位参与者
  theme-show PRINCIPAL                查看主题偏好
  theme-set PRINCIPAL PRESET [MODE]   保存主题偏好
"""

import asyncio
import sys

from .config import get_db_path
from .exceptions import InvalidInput
from .identity import canonicalize, other_participant
from .models import THEME_PRESETS, ThemeMode, ThemePreference

_USAGE = """用法: python -m pairsync.core <command>
命令:
  conversation-id A B                 计算两位参与者的 ConversationId
  other-participant CID SELF          解析会话中的另一位参与者
  theme-show PRINCIPAL                查看主题偏好
  theme-set PRINCIPAL PRESET [MODE]   保存主题偏好（MODE: light/dark/system）"""


def main(argv: list[str] | None = None) -> None:
    """CLI 主入口"""
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print(_USAGE)
        sys.exit(1)

    command, rest = args[0], args[1:]

    try:
        if command == "conversation-id" and len(rest) == 2:
            print(canonicalize(rest[0], rest[1]))
        elif command == "other-participant" and len(rest) == 2:
            print(other_participant(rest[0], rest[1]))
        elif command == "theme-show" and len(rest) == 1:
            asyncio.run(theme_show(rest[0]))
        elif command == "theme-set" and len(rest) in (2, 3):
            asyncio.run(theme_set(*rest))
        else:
            print(f"未知命令或参数数量错误: {' '.join(args)}")
            print(_USAGE)
            sys.exit(1)
    except (InvalidInput, ValueError) as e:
        print(f"错误: {e}")
        sys.exit(2)


async def theme_show(principal: str) -> None:
    """打印参与者的主题偏好"""
    from .store import open_preference_store

    store = await open_preference_store(get_db_path())
    try:
        preference = await store.load_theme(principal)
    finally:
        await store.conn.close()

    print(f"模式: {preference.mode.value}")
    print(f"配色: {preference.color_theme} ({THEME_PRESETS[preference.color_theme]})")


async def theme_set(principal: str, preset: str, mode: str = ThemeMode.SYSTEM.value) -> None:
    """保存参与者的主题偏好"""
    from .store import open_preference_store

    # 非法预设/模式抛出 ValueError（pydantic ValidationError 是其子类）
    preference = ThemePreference(mode=ThemeMode(mode), color_theme=preset)

    db_path = get_db_path()
    store = await open_preference_store(db_path)
    try:
        await store.save_theme(principal, preference)
    finally:
        await store.conn.close()

    print(f"已保存: {principal} -> {preference.color_theme} / {preference.mode.value}")
    print(f"数据库路径: {db_path}")


if __name__ == "__main__":
    main()
