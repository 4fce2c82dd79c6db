"""ThemePreference -- 进程级偏好，不属于同步引擎"""

from pydantic import BaseModel, Field, field_validator

from .enums import ThemeMode

# 预设色板（key -> 展示名）
THEME_PRESETS: dict[str, str] = {
    "warm": "Warm Sunset",
    "cool": "Ocean Breeze",
    "forest": "Forest Green",
    "coral": "Coral Reef",
    "lavender": "Lavender Dream",
    "midnight": "Midnight Blue",
    "sunset": "Desert Sunset",
    "mint": "Fresh Mint",
    "cherry": "Cherry Blossom",
    "amber": "Amber Glow",
}

DEFAULT_COLOR_THEME = "coral"


class ThemePreference(BaseModel):
    mode: ThemeMode = Field(default=ThemeMode.SYSTEM, description="明暗模式")
    color_theme: str = Field(default=DEFAULT_COLOR_THEME, description="色板预设 key")

    @field_validator("color_theme")
    @classmethod
    def _known_preset(cls, value: str) -> str:
        if value not in THEME_PRESETS:
            raise ValueError(f"unknown color theme: {value}")
        return value
