"""
Application settings and configuration

Uses pydantic-settings for type-safe configuration via environment variables.
All settings use CAMPFIRE_ prefix (e.g., CAMPFIRE_MAX_EXPAND_DEPTH=10).

Settings can also be loaded from a .env file in the project root.
"""

import re
from typing import Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_DECK_SIZE_PATTERN = re.compile(r"^(\d+)x(\d+)$")


class AppSettings(BaseSettings):
    """
    Application configuration via environment variables.

    Environment variables use CAMPFIRE_ prefix.

    Examples:
        CAMPFIRE_DIRECTIVE_MARKER=:::
        CAMPFIRE_STRICT_MODE=true
        CAMPFIRE_DEFAULT_SAVE_ID=mystory.save
    """

    model_config = SettingsConfigDict(
        env_prefix="CAMPFIRE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Transformer configuration
    directive_marker: str = Field(
        default=":::",
        description="Container directive marker; leftover marker paragraphs are removed",
    )

    max_expand_depth: int = Field(
        default=20,
        description="Recursion bound when re-parsing indented code blocks as directive markup",
    )

    max_include_depth: int = Field(
        default=10,
        description="Maximum nesting depth for the include directive",
    )

    strict_mode: bool = Field(
        default=False,
        description="Strict mode: raise after a render pass that recorded validation errors",
    )

    # Expression configuration
    expression_cache_size: int = Field(
        default=512,
        description="Maximum number of compiled expressions kept by each Evaluator",
    )

    # Persistence configuration
    default_save_id: str = Field(
        default="campfire.save",
        description="Storage key used by save/load/clearSave when no id is given",
    )

    # Deck configuration
    deck_default_width: int = Field(default=1920, description="Default deck width in pixels")
    deck_default_height: int = Field(default=1080, description="Default deck height in pixels")

    aspect_ratio_threshold: int = Field(
        default=100,
        description="Deck sizes with both parts at or below this value are aspect ratios",
    )

    autoplay_delay_ms: int = Field(
        default=3000,
        description="Default delay between slides when a deck autoplays",
    )

    def saveKey_make(self, save_id: Optional[str] = None) -> str:
        """
        Resolve an optional save slot id to a storage key.

        Args:
            save_id: Explicit slot id, or None/empty for the default slot

        Returns:
            Storage key for the slot

        Example:
            >>> settings = AppSettings()
            >>> settings.saveKey_make()
            'campfire.save'
            >>> settings.saveKey_make('slot2')
            'slot2'
        """
        if save_id:
            return save_id
        return self.default_save_id

    def deckSize_parse(self, value: Optional[str]) -> Tuple[int, int]:
        """
        Parse a deck size attribute such as "1280x720" or an aspect ratio like "16x9".

        Aspect ratios are scaled against the default deck width.

        Args:
            value: Raw size string

        Returns:
            (width, height) tuple

        Example:
            >>> settings = AppSettings()
            >>> settings.deckSize_parse('16x9')
            (1920, 1080)
            >>> settings.deckSize_parse('800x600')
            (800, 600)
        """
        match = _DECK_SIZE_PATTERN.match(value or "")
        if match:
            w, h = int(match.group(1)), int(match.group(2))
            if w == 0:
                return self.deck_default_width, self.deck_default_height
            if w <= self.aspect_ratio_threshold and h <= self.aspect_ratio_threshold:
                width = self.deck_default_width
                return width, int(round(width * h / w))
            return w, h
        return self.deck_default_width, self.deck_default_height


# Singleton instance - import this in your code
appsettings = AppSettings()
