from __future__ import annotations

from collections import Counter, defaultdict
from datetime import UTC, date, timedelta
from typing import Any

import numpy as np

from binwatch.models.schemas import Bin, ImageRecord

# The last bucket is closed, so a bin at exactly 100 counts as 75-100.
FILL_LEVEL_BOUNDARIES: list[float] = [0, 25, 50, 75, 100]

WASTE_PERIODS: dict[str, timedelta] = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


def count_by(items: list[Any], field: str) -> list[dict[str, Any]]:
    counts = Counter(str(getattr(item, field)) for item in items)
    return [{"key": key, "count": count} for key, count in sorted(counts.items())]


def fill_level_distribution(bins: list[Bin]) -> list[dict[str, Any]]:
    levels = np.array([item.fill_level for item in bins], dtype=float)
    counts, edges = np.histogram(levels, bins=FILL_LEVEL_BOUNDARIES)
    return [
        {"lower": float(low), "upper": float(high), "count": int(count)}
        for low, high, count in zip(edges[:-1], edges[1:], counts, strict=True)
    ]


def average_fill_level(bins: list[Bin]) -> float:
    if not bins:
        return 0.0
    return round(float(np.mean([item.fill_level for item in bins])), 2)


def bin_status_overview(bins: list[Bin]) -> dict[str, Any]:
    return {
        "status": count_by(bins, "status"),
        "fill_level_distribution": fill_level_distribution(bins),
        "by_category": count_by(bins, "category"),
    }


def dashboard_summary(
    bins: list[Bin],
    *,
    full_level: float,
    unresolved_alerts: int,
    critical_alerts: int,
    total_images: int,
    unverified_images: int,
    pending_commands: int,
) -> dict[str, Any]:
    return {
        "bins": {
            "total": len(bins),
            "active": sum(1 for item in bins if item.status == "active"),
            "offline": sum(1 for item in bins if item.status == "offline"),
            "full": sum(1 for item in bins if item.fill_level > full_level),
            "avg_fill_level": round(average_fill_level(bins)),
        },
        "alerts": {"unresolved": unresolved_alerts, "critical": critical_alerts},
        "images": {"total": total_images, "unverified": unverified_images},
        "commands": {"pending": pending_commands},
        "waste_distribution": count_by(bins, "category"),
    }


def category_performance(records: list[ImageRecord]) -> list[dict[str, Any]]:
    grouped: dict[str, list[ImageRecord]] = defaultdict(list)
    for record in records:
        if record.predicted_category is None:
            continue
        grouped[record.predicted_category].append(record)

    output: list[dict[str, Any]] = []
    for category, items in sorted(grouped.items()):
        confidences = [item.confidence for item in items if item.confidence is not None]
        verified = [item for item in items if item.is_verified]
        correct = sum(1 for item in verified if item.actual_category == item.predicted_category)
        output.append(
            {
                "category": category,
                "count": len(items),
                "avg_confidence": round(float(np.mean(confidences)), 2) if confidences else None,
                "verified": len(verified),
                "correct": correct,
                "accuracy": round(correct / len(verified), 3) if verified else None,
            }
        )
    return output


def waste_count(records: list[ImageRecord]) -> list[dict[str, Any]]:
    """Verified classifications grouped by actual category, largest group first."""
    grouped: dict[str, list[float]] = defaultdict(list)
    for record in records:
        grouped[record.actual_category or "unknown"].append(record.confidence or 0.0)

    output = [
        {
            "category": category,
            "count": len(confidences),
            "avg_confidence": round(float(np.mean(confidences))),
        }
        for category, confidences in grouped.items()
    ]
    return sorted(output, key=lambda item: (-item["count"], item["category"]))


def daily_trends(records: list[ImageRecord], *, days: int, end: date) -> list[dict[str, Any]]:
    """Per-day verified counts for the `days` days ending on `end`, zero-filled."""
    buckets: dict[date, list[float]] = defaultdict(list)
    for record in records:
        day_key = record.captured_at.astimezone(UTC).date()
        buckets[day_key].append(record.confidence or 0.0)

    start = end - timedelta(days=days - 1)
    trends: list[dict[str, Any]] = []
    for offset in range(days):
        day_key = start + timedelta(days=offset)
        confidences = buckets.get(day_key, [])
        trends.append(
            {
                "date": day_key.isoformat(),
                "count": len(confidences),
                "avg_confidence": round(float(np.mean(confidences))) if confidences else 0,
            }
        )
    return trends
