"""Helpers for the loosely-shaped JSON the law.go.kr family of APIs returns."""

from typing import Any


def as_list(value: Any) -> list[dict[str, Any]]:
    """
    Normalize a result field to a list of objects.

    Upstream returns a single hit as a bare object and several hits as an
    array; a missing or null field means no hits.
    """
    if value is None or value == "":
        return []
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    raise TypeError(f"expected object or list, got {type(value).__name__}")


def unwrap_envelope(payload: Any, envelope_keys: tuple[str, ...]) -> dict[str, Any]:
    """
    Return the body holding totalCnt and the result list.

    Both {"LawSearch": {...}} and the older flat layout are accepted.
    """
    if not isinstance(payload, dict):
        raise TypeError(f"expected JSON object, got {type(payload).__name__}")
    for key in envelope_keys:
        inner = payload.get(key)
        if isinstance(inner, dict):
            return inner
    return payload


def to_int(value: Any, default: int = 0) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "\n".join(t for t in (text(v) for v in value) if t)
    if isinstance(value, dict):
        return "\n".join(t for t in (text(v) for v in value.values()) if t)
    return str(value).strip()


def relevance_score(title: str, query: str) -> float:
    """
    Heuristic title relevance in 0..1.

    Whole-query containment is worth 2, each matching whitespace-separated
    word 1, and an earlier match position adds up to 1.
    """
    title_lower = (title or "").lower()
    query_lower = " ".join((query or "").split()).lower()
    if not title_lower or not query_lower:
        return 0.0

    words = query_lower.split()
    score = 0.0
    if query_lower in title_lower:
        score += 2.0
    score += sum(1.0 for word in words if word in title_lower)
    pos = title_lower.find(query_lower)
    if pos >= 0:
        score += 1.0 / (pos + 1.0)

    max_score = 3.0 + len(words)
    return round(min(score / max_score, 1.0), 4)
