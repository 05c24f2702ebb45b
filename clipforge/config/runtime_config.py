"""Environment-driven settings for the editor and the render runner."""
from __future__ import annotations

import os
import tempfile
from typing import Optional

DEFAULT_FONT_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"
DEFAULT_RENDER_TIMEOUT = 600
DEFAULT_HISTORY_LIMIT = 50


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(name, default)


def _get_int(name: str, default: int) -> int:
    raw = _get_env(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def get_ffmpeg_bin() -> str:
    return _get_env("CLIPFORGE_FFMPEG_BIN") or "ffmpeg"


def get_font_path() -> str:
    """Font file handed to drawtext; must exist on the render host."""
    return _get_env("CLIPFORGE_FONT_PATH") or DEFAULT_FONT_PATH


def get_output_dir() -> str:
    return _get_env("CLIPFORGE_OUTPUT_DIR") or tempfile.gettempdir()


def get_render_timeout() -> int:
    return _get_int("CLIPFORGE_RENDER_TIMEOUT", DEFAULT_RENDER_TIMEOUT)


def get_history_limit() -> int:
    return _get_int("CLIPFORGE_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT)
