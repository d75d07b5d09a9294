"""Human-readable usage figures for status output."""

from __future__ import annotations

from dataclasses import dataclass

from ..types import UsageReport

_SIZES = ["B", "KB", "MB", "GB"]


def format_bytes(num_bytes: int | float) -> str:
    if not num_bytes or num_bytes <= 0:
        return "0 B"
    i = 0
    value = float(num_bytes)
    while value >= 1024 and i < len(_SIZES) - 1:
        value /= 1024
        i += 1
    value = round(value, 2)
    # 1.50 -> 1.5, 2.00 -> 2
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZES[i]}"


def format_number(num: int | float) -> str:
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1000:
        return f"{num / 1000:.1f}K"
    return str(num)


def storage_level(percent: float) -> str:
    """Bar colour for storage usage: "danger" over 90%, "warning" over 70%."""
    if percent > 90:
        return "danger"
    if percent > 70:
        return "warning"
    return ""


@dataclass
class DailyUsage:
    used: int
    limit: int
    percent: int
    level: str  # "", "warning", "danger"
    hint: str = ""

    @property
    def limit_reached(self) -> bool:
        return self.percent >= 100


def daily_usage(usage: UsageReport) -> DailyUsage | None:
    """Daily extraction usage for free tiers; None when the tier is unlimited."""
    if usage.tier != "free" or usage.summarizations_limit == -1:
        return None

    used = usage.summarizations_today or 0
    limit = usage.summarizations_limit or 50
    percent = min(100, int(used / limit * 100 + 0.5))

    if percent >= 100:
        return DailyUsage(
            used, limit, percent, "danger",
            "Limit reached! Upgrade to Pro for unlimited extractions.",
        )
    if percent >= 80:
        return DailyUsage(
            used, limit, percent, "warning",
            f"Only {limit - used} left today. Upgrade to Pro for unlimited.",
        )
    return DailyUsage(used, limit, percent, "")
