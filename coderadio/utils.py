"""Small formatting helpers shared by the terminal display."""

from typing import Optional


def humanize_seconds(seconds: float) -> str:
    """Format seconds as mm:ss, e.g. 74 -> '01:14'."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def format_progress_info(elapsed: float, duration: Optional[float]) -> str:
    """'01:14 / 05:14', or only the elapsed part when the duration is unknown."""
    if duration:
        return f"{humanize_seconds(elapsed)} / {humanize_seconds(duration)}"
    return humanize_seconds(elapsed)


def format_volume(level: Optional[int]) -> str:
    return f"Volume {'*' if level is None else level}/9"


def format_listeners(count: Optional[int]) -> str:
    return f"Listeners: {'-' if count is None else count}"
