"""
Human-readable formatting for sizes, speeds and times.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Optional

KB = 1024
MB = 1024 * KB
GB = 1024 * MB

MAX_REASONABLE_SECONDS = 359_999


def format_file_size(size_bytes: int) -> str:
    """Format a byte count, e.g. "128 B", "4.2 KB", "12.8 MB", "1.05 GB"."""
    if size_bytes < KB:
        return f"{size_bytes} B"
    if size_bytes < MB:
        return f"{size_bytes / KB:.1f} KB"
    if size_bytes < GB:
        return f"{size_bytes / MB:.1f} MB"
    return f"{size_bytes / GB:.2f} GB"


def format_speed(bytes_per_sec: float) -> str:
    if bytes_per_sec < MB:
        return f"{bytes_per_sec / KB:.1f} KB/s"
    return f"{bytes_per_sec / MB:.1f} MB/s"


def format_eta(seconds: float) -> str:
    """Format seconds remaining; negative or absurd values read as "calculating..."."""
    if seconds < 0 or seconds != seconds or seconds > MAX_REASONABLE_SECONDS:
        return "calculating..."
    if seconds < 60:
        return f"~{round(seconds)} sec remaining"
    if seconds < 3600:
        return f"~{round(seconds / 60)} min remaining"
    hours = int(seconds // 3600)
    minutes = round((seconds % 3600) / 60)
    return f"~{hours}h {minutes}m remaining"


def format_timestamp(epoch_millis: int) -> str:
    """Format epoch milliseconds in local time, e.g. "Jan 15, 2024 3:30 PM"."""
    moment = datetime.fromtimestamp(epoch_millis / 1000)
    hour = moment.hour % 12 or 12
    am_pm = "PM" if moment.hour >= 12 else "AM"
    return f"{moment.strftime('%b')} {moment.day}, {moment.year} {hour}:{moment.minute:02d} {am_pm}"


def format_countdown(target_millis: int, now_millis: Optional[int] = None) -> str:
    """Format the time until ``target_millis`` as "XXh YYm", or "Now" when due."""
    current = int(time.time() * 1000) if now_millis is None else now_millis
    diff = target_millis - current
    if diff <= 0:
        return "Now"
    total_minutes = diff // 60_000
    hours, minutes = divmod(total_minutes, 60)
    if hours == 0:
        return f"{minutes}m"
    return f"{hours}h {minutes:02d}m"


def format_schedule_time(hour: int, minute: int) -> str:
    am_pm = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {am_pm}"
