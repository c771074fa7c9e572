"""Versioned XP-to-level curves.

The curve is configuration: ``RADA_LEVEL_CURVE_VERSION`` picks the table.
Changing thresholds means adding a new version, never editing an old one,
so stored levels can always be recomputed against the curve that produced
them. Every curve must be monotonic in ``cumulative``.
"""

from __future__ import annotations

from rada.config import get_settings

DEFAULT_CURVE_VERSION = "v2"


def _linear_curve(step: int, max_level: int) -> list[dict]:
    """The original platform rule: level = floor(total_xp / step) + 1."""
    return [
        {
            "level": n,
            "title": f"Level {n}",
            "xp_required": 0 if n == 1 else step,
            "cumulative": (n - 1) * step,
        }
        for n in range(1, max_level + 1)
    ]


LEVEL_CURVES: dict[str, list[dict]] = {
    "v1": _linear_curve(step=100, max_level=100),
    "v2": [
        {"level": 1, "title": "Newcomer", "xp_required": 0, "cumulative": 0},
        {"level": 2, "title": "Curious Citizen", "xp_required": 100, "cumulative": 100},
        {"level": 3, "title": "Informed Voter", "xp_required": 250, "cumulative": 350},
        {"level": 4, "title": "Community Voice", "xp_required": 500, "cumulative": 850},
        {"level": 5, "title": "Ward Watcher", "xp_required": 750, "cumulative": 1600},
        {"level": 6, "title": "County Scholar", "xp_required": 1000, "cumulative": 2600},
        {"level": 7, "title": "Devolution Expert", "xp_required": 1500, "cumulative": 4100},
        {"level": 8, "title": "Bunge Analyst", "xp_required": 2000, "cumulative": 6100},
        {"level": 9, "title": "Constitution Keeper", "xp_required": 3000, "cumulative": 9100},
        {"level": 10, "title": "Civic Champion", "xp_required": 5000, "cumulative": 14100},
        {"level": 15, "title": "Policy Pathfinder", "xp_required": 10000, "cumulative": 24100},
        {"level": 20, "title": "Guardian of the Republic", "xp_required": 25000, "cumulative": 49100},
    ],
}


def get_curve(version: str | None = None) -> list[dict]:
    """Return the threshold table for a curve version (configured one by default)."""
    if version is None:
        version = get_settings().level_curve_version
    try:
        return LEVEL_CURVES[version]
    except KeyError:
        raise ValueError(f"Unknown level curve version: {version}") from None


def compute_level(total_xp: int, version: str | None = None) -> dict:
    """Compute level info from total XP.

    Negative totals (possible after reversals) sit at the first level.
    """
    thresholds = get_curve(version)
    current = thresholds[0]
    next_level = thresholds[1] if len(thresholds) > 1 else thresholds[0]

    for i in range(len(thresholds) - 1):
        if total_xp >= thresholds[i]["cumulative"]:
            current = thresholds[i]
            next_level = thresholds[i + 1]

    # Beyond the top of the table
    if total_xp >= thresholds[-1]["cumulative"]:
        current = thresholds[-1]
        next_level = thresholds[-1]

    xp_into_level = max(0, total_xp - current["cumulative"])
    xp_for_level = next_level["cumulative"] - current["cumulative"]

    # At max level, avoid division by zero
    if xp_for_level == 0:
        xp_for_level = 1

    return {
        "level": current["level"],
        "title": current["title"],
        "xp_into_level": xp_into_level,
        "xp_for_level": xp_for_level,
        "next_level": next_level["level"],
        "next_title": next_level["title"],
    }
