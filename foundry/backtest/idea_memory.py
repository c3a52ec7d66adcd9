from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence

from loguru import logger

from foundry.backtest.types import CandidateEvaluation

MEMORY_FILENAME = "idea-memory.json"
TOP_COUNTED = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def empty_memory() -> Dict[str, Any]:
    return {"updated_at": _utcnow().isoformat(), "buckets": {}}


def load_memory(path: Path) -> Dict[str, Any]:
    """
    Read the cross-run memory document.

    A missing file starts a fresh memory. An unreadable or malformed file is logged
    and replaced by a fresh memory; the next save overwrites it.
    """
    path = Path(path)
    if not path.exists():
        return empty_memory()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("[memory] unreadable memory path={} err={}", path, exc)
        return empty_memory()
    if not isinstance(data, dict) or not isinstance(data.get("buckets"), dict):
        logger.warning("[memory] malformed memory path={}", path)
        return empty_memory()
    return data


def save_memory(memory: Dict[str, Any], path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(memory, indent=2, default=str), encoding="utf-8")
    return path


def update_memory(
    memory: Dict[str, Any], key: str, ranked: Sequence[CandidateEvaluation]
) -> Dict[str, Any]:
    """Count the top three families of a ranking in ``key``; the first one also wins."""
    buckets = memory.setdefault("buckets", {})
    bucket = buckets.setdefault(key, {"runs": 0, "family_stats": {}})
    bucket["runs"] = int(bucket.get("runs", 0)) + 1
    stats = bucket.setdefault("family_stats", {})

    for position, evaluation in enumerate(ranked[:TOP_COUNTED]):
        family = evaluation.candidate.family
        entry = stats.setdefault(family, {"count": 0, "score_total": 0.0, "wins": 0})
        entry["count"] += 1
        entry["score_total"] += float(evaluation.score)
        if position == 0:
            entry["wins"] += 1

    memory["updated_at"] = _utcnow().isoformat()
    return memory


def bucket_leaderboard(memory: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    bucket = memory.get("buckets", {}).get(key)
    if not bucket:
        return []
    rows: List[Dict[str, Any]] = []
    for family, stats in bucket.get("family_stats", {}).items():
        count = int(stats.get("count", 0))
        rows.append(
            {
                "family": family,
                "avg_score": float(stats.get("score_total", 0.0)) / count if count else 0.0,
                "win_rate": int(stats.get("wins", 0)) / count if count else 0.0,
            }
        )
    rows.sort(key=lambda r: (r["win_rate"], r["avg_score"]), reverse=True)
    return rows


def family_multipliers(
    memory: Dict[str, Any], key: str, strength: float
) -> Dict[str, float]:
    """
    Per-family score multipliers for the ranker.

    Each family seen in ``key`` maps to ``1 + strength * (win_rate - 0.5)``. A zero
    strength (the default in settings) returns an empty mapping so scores are untouched.
    """
    if not strength:
        return {}
    return {
        row["family"]: 1.0 + float(strength) * (row["win_rate"] - 0.5)
        for row in bucket_leaderboard(memory, key)
    }


__all__ = [
    "MEMORY_FILENAME",
    "empty_memory",
    "load_memory",
    "save_memory",
    "update_memory",
    "bucket_leaderboard",
    "family_multipliers",
]
