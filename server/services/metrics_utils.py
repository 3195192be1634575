# server/services/metrics_utils.py

import math
import re
from collections import OrderedDict
from typing import Any, Dict, List

# LinkedIn outreach benchmarks (2024-2025)
INDUSTRY_BENCHMARKS = {
    "linkedin": {
        "acceptanceRate": {"poor": 15, "average": 29.61, "good": 40, "excellent": 50, "elite": 60},
        "replyRate": {"poor": 3, "average": 7.22, "good": 15, "excellent": 25, "elite": 35},
        "personalization": {"noMessage": 5.44, "withMessage": 9.36, "multiTouch": 11.87},
    },
    "insurance": {
        "quoteToBindRate": {"poor": 10, "average": 25, "good": 35, "excellent": 45},
        "contactRate": {"poor": 20, "average": 40, "good": 55, "excellent": 70},
        "customerRetention": {"poor": 70, "average": 80, "good": 88, "excellent": 95},
    },
}

# Ordered highest first; first threshold met wins
PERFORMANCE_TIERS = OrderedDict([
    ("elite", {"min": 50, "label": "Elite", "color": "#8B5CF6"}),
    ("excellent", {"min": 40, "label": "Excellent", "color": "#10B981"}),
    ("good", {"min": 29.61, "label": "Above Benchmark", "color": "#13BCC5"}),
    ("average", {"min": 20, "label": "Average", "color": "#F59E0B"}),
    ("needsWork", {"min": 0, "label": "Needs Improvement", "color": "#EF4444"}),
])

Z_SCORES = {0.95: 1.96, 0.99: 2.576}


def parse_num(value: Any) -> float:
    """Parse a sheet cell like "12.5%" or "1,024" into a number, 0 if blank or invalid."""
    if value is None or value == "":
        return 0.0
    cleaned = re.sub(r"[%,]", "", str(value)).strip()
    match = re.match(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?", cleaned)
    if not match:
        return 0.0
    return float(match.group(0))


def format_number(num: float) -> str:
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1000:
        return f"{num / 1000:.1f}K"
    return f"{num:.0f}"


def format_percent(num: float, decimals: int = 1) -> str:
    return f"{num:.{decimals}f}%"


def safe_percent(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return (numerator / denominator) * 100


def linear_regression(data: List[float]) -> Dict[str, float]:
    """Least-squares fit of data against its index. Returns slope, intercept, r2."""
    n = len(data)
    if n < 2:
        return {"slope": 0.0, "intercept": data[0] if data else 0.0, "r2": 0.0}

    x_mean = (n - 1) / 2
    y_mean = sum(data) / n

    ss_xy = ss_xx = ss_yy = 0.0
    for i, y in enumerate(data):
        ss_xy += (i - x_mean) * (y - y_mean)
        ss_xx += (i - x_mean) ** 2
        ss_yy += (y - y_mean) ** 2

    slope = ss_xy / ss_xx if ss_xx != 0 else 0.0
    intercept = y_mean - slope * x_mean
    r2 = (ss_xy ** 2) / (ss_xx * ss_yy) if ss_yy != 0 else 0.0
    return {"slope": slope, "intercept": intercept, "r2": r2}


def predict_future(data: List[float], periods: int) -> List[float]:
    fit = linear_regression(data)
    return [
        max(0.0, fit["slope"] * (len(data) + i) + fit["intercept"])
        for i in range(periods)
    ]


def calculate_confidence_interval(data: List[float], confidence: float = 0.95) -> Dict[str, float]:
    n = len(data)
    if n == 0:
        return {"lower": 0.0, "upper": 0.0, "mean": 0.0}

    mean = sum(data) / n
    std_dev = math.sqrt(sum((v - mean) ** 2 for v in data) / n)
    z = Z_SCORES.get(confidence, 1.645)
    margin = z * (std_dev / math.sqrt(n))
    return {"lower": mean - margin, "upper": mean + margin, "mean": mean}


def calculate_trend(data: List[float]) -> str:
    fit = linear_regression(data)
    if abs(fit["slope"]) < 0.5 or fit["r2"] < 0.3:
        return "stable"
    return "up" if fit["slope"] > 0 else "down"


def get_performance_tier(acceptance_rate: float) -> Dict[str, Any]:
    for key, tier in PERFORMANCE_TIERS.items():
        if acceptance_rate >= tier["min"]:
            return {**tier, "key": key}
    return {**PERFORMANCE_TIERS["needsWork"], "key": "needsWork"}


def calculate_agent_score(acceptance_rate: float, reply_rate: float, volume: float, consistency: float) -> int:
    """
    Composite 0-100 agent score.

    Weights: acceptance 35%, reply 30%, volume 20%, consistency 15%.
    Each component saturates at 50% acceptance, 30% reply, 1000 invites
    and 12 active weeks respectively.
    """
    acceptance = min(100.0, (acceptance_rate / 50) * 100) * 0.35
    reply = min(100.0, (reply_rate / 30) * 100) * 0.30
    vol = min(100.0, (volume / 1000) * 100) * 0.20
    steady = min(100.0, (consistency / 12) * 100) * 0.15
    return int(math.floor(acceptance + reply + vol + steady + 0.5))


def validate_metric(metric: Dict[str, Any]) -> Dict[str, Any]:
    errors = []
    if not metric.get("id"):
        errors.append("Missing id")
    if metric.get("rowIndex") is None:
        errors.append("Missing rowIndex")

    for field in ("totalInvited", "totalAccepted", "totalMessaged", "replies"):
        value = metric.get(field)
        if value not in (None, "") and parse_num(value) < 0:
            errors.append(f"{field} cannot be negative")

    return {"valid": not errors, "errors": errors}


def summarize_metrics(rows: List[Dict[str, Any]], forecast_weeks: int = 4) -> Dict[str, Any]:
    """
    Aggregate weekly metric rows into per-agent and overall figures.

    Rows keep sheet order, which is chronological by week end.
    """
    agents: Dict[str, Dict[str, float]] = OrderedDict()
    weekly_acceptance: Dict[str, List[float]] = OrderedDict()

    for row in rows:
        name = (row.get("agent") or "").strip() or "Unassigned"
        stats = agents.setdefault(name, {
            "invited": 0.0, "accepted": 0.0, "messaged": 0.0, "replies": 0.0, "weeks": 0,
        })
        invited = parse_num(row.get("totalInvited"))
        accepted = parse_num(row.get("totalAccepted"))
        stats["invited"] += invited
        stats["accepted"] += accepted
        stats["messaged"] += parse_num(row.get("totalMessaged"))
        stats["replies"] += parse_num(row.get("replies"))
        if invited or accepted:
            stats["weeks"] += 1

        week = row.get("weekEnd") or ""
        if week:
            weekly_acceptance.setdefault(week, []).append(parse_num(row.get("acceptanceRate")))

    per_agent = []
    for name, stats in agents.items():
        acceptance_rate = safe_percent(stats["accepted"], stats["invited"])
        reply_rate = safe_percent(stats["replies"], stats["messaged"])
        per_agent.append({
            "agent": name,
            "totalInvited": int(stats["invited"]),
            "totalAccepted": int(stats["accepted"]),
            "totalMessaged": int(stats["messaged"]),
            "replies": int(stats["replies"]),
            "activeWeeks": stats["weeks"],
            "acceptanceRate": round(acceptance_rate, 2),
            "replyRate": round(reply_rate, 2),
            "tier": get_performance_tier(acceptance_rate),
            "score": calculate_agent_score(acceptance_rate, reply_rate, stats["invited"], stats["weeks"]),
        })
    per_agent.sort(key=lambda a: a["score"], reverse=True)

    total_invited = sum(a["totalInvited"] for a in per_agent)
    total_accepted = sum(a["totalAccepted"] for a in per_agent)
    total_messaged = sum(a["totalMessaged"] for a in per_agent)
    total_replies = sum(a["replies"] for a in per_agent)

    acceptance_series = [sum(v) / len(v) for v in weekly_acceptance.values()]

    return {
        "rowCount": len(rows),
        "agents": per_agent,
        "totals": {
            "totalInvited": total_invited,
            "totalAccepted": total_accepted,
            "totalMessaged": total_messaged,
            "replies": total_replies,
            "acceptanceRate": round(safe_percent(total_accepted, total_invited), 2),
            "replyRate": round(safe_percent(total_replies, total_messaged), 2),
        },
        "acceptanceTrend": {
            "weeks": list(weekly_acceptance.keys()),
            "series": [round(v, 2) for v in acceptance_series],
            "direction": calculate_trend(acceptance_series),
            "forecast": [round(v, 2) for v in predict_future(acceptance_series, forecast_weeks)],
            "confidence": calculate_confidence_interval(acceptance_series),
        },
        "benchmarks": INDUSTRY_BENCHMARKS["linkedin"],
    }
