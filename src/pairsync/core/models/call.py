"""CallLogEntry -- 通话记录

只由远端在通话结束后创建；用户可显式删除（乐观移除，待远端确认）。
"""

from pydantic import BaseModel, Field

from .enums import CallType


class CallLogEntry(BaseModel):
    id: int = Field(ge=0, description="远端分配 ID")
    from_user: str | None = Field(default=None, description="主叫 username")
    to_user: str | None = Field(default=None, description="被叫 username")
    call_type: CallType
    duration_seconds: int = Field(default=0, ge=0)
    notes: str = ""
    timestamp_nanos: int = Field(default=0, ge=0)
