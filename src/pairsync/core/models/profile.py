"""UserProfile 与本地形状校验

username 是对外唯一 handle（3-32 位字母数字下划线），displayName 仅用于展示（1-32 位）。
唯一性与保留词由远端判定，这里只做发送前的形状检查。
"""

import re

from pydantic import BaseModel, Field

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 32
DISPLAY_NAME_MIN_LENGTH = 1
DISPLAY_NAME_MAX_LENGTH = 32

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


class UserProfile(BaseModel):
    principal_id: str = Field(description="所属 principal")
    username: str = Field(description="唯一 handle")
    display_name: str = Field(description="显示名")


def username_problem(username: str) -> str | None:
    """返回 username 的形状问题描述，合法时返回 None"""
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        return (
            f"Username must be between {USERNAME_MIN_LENGTH} and "
            f"{USERNAME_MAX_LENGTH} characters"
        )
    if not _USERNAME_RE.match(username):
        return "Username cannot contain characters other than letters, digits and underscore"
    return None


def display_name_problem(display_name: str) -> str | None:
    """返回 displayName 的形状问题描述，合法时返回 None"""
    if not DISPLAY_NAME_MIN_LENGTH <= len(display_name.strip()) <= DISPLAY_NAME_MAX_LENGTH:
        return (
            f"Display name must be between {DISPLAY_NAME_MIN_LENGTH} and "
            f"{DISPLAY_NAME_MAX_LENGTH} characters"
        )
    return None
