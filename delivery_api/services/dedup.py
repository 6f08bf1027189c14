"""
Fuzzy product deduplication for catalog imports.

Products are compared field by field with difflib ratios, weighted toward the
name. Exact SKU equality is treated as a certain match.
"""
from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

FIELD_WEIGHTS: Dict[str, float] = {
    "name": 0.5,
    "brand": 0.2,
    "category": 0.1,
    "strain_type": 0.1,
    "thc_percent": 0.1,
}

DEFAULT_THRESHOLD = 0.75
MERGE_THRESHOLD = 0.9

_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


@dataclass
class DuplicateMatch:
    left: Dict[str, Any]
    right: Dict[str, Any]
    score: float
    action: str
    field_scores: Dict[str, float] = field(default_factory=dict)


@dataclass
class DedupReport:
    """What an import did: rows to create, rows to merge, pairs needing a human."""
    created: List[Dict[str, Any]] = field(default_factory=list)
    merged: List[Dict[str, Any]] = field(default_factory=list)
    review: List[DuplicateMatch] = field(default_factory=list)
    skipped: int = 0


# PUBLIC_INTERFACE
def normalize_text(value: Any) -> str:
    """Lowercase, spell out '&', drop punctuation, collapse whitespace."""
    if value is None:
        return ""
    text = str(value).lower().replace("&", " and ")
    text = _PUNCT_RE.sub(" ", text).replace("_", " ")
    return _SPACE_RE.sub(" ", text).strip()


def _token_sort(value: str) -> str:
    return " ".join(sorted(value.split()))


# PUBLIC_INTERFACE
def field_similarity(a: Any, b: Any) -> float:
    """Similarity in [0, 1]; word order is ignored by also comparing sorted tokens."""
    left, right = normalize_text(a), normalize_text(b)
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    direct = difflib.SequenceMatcher(None, left, right).ratio()
    sorted_ratio = difflib.SequenceMatcher(None, _token_sort(left), _token_sort(right)).ratio()
    return max(direct, sorted_ratio)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def numeric_similarity(a: Any, b: Any) -> Optional[float]:
    left, right = _to_decimal(a), _to_decimal(b)
    if left is None and right is None:
        return None
    if left is None or right is None:
        return 0.0
    delta = abs(left - right)
    if delta <= Decimal("0.5"):
        return 1.0
    if delta <= Decimal("2"):
        return 0.5
    return 0.0


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# PUBLIC_INTERFACE
def compare_products(left: Mapping[str, Any], right: Mapping[str, Any]) -> tuple[float, Dict[str, float]]:
    """
    Weighted similarity of two product records.

    Fields missing on both sides are left out and the remaining weights are
    renormalized, so two sparse records are judged on what they do have.
    """
    sku_l, sku_r = normalize_text(left.get("sku")), normalize_text(right.get("sku"))
    if sku_l and sku_l == sku_r:
        return 1.0, {"sku": 1.0}

    scores: Dict[str, float] = {}
    total_weight = 0.0
    weighted = 0.0
    for name, weight in FIELD_WEIGHTS.items():
        a, b = left.get(name), right.get(name)
        if _is_blank(a) and _is_blank(b):
            continue
        if name == "thc_percent":
            score = numeric_similarity(a, b)
            if score is None:
                continue
        else:
            score = field_similarity(a, b)
        scores[name] = round(score, 4)
        weighted += score * weight
        total_weight += weight

    if total_weight == 0:
        return 0.0, scores
    return round(weighted / total_weight, 4), scores


def _action_for(score: float) -> str:
    return "merge" if score >= MERGE_THRESHOLD else "review"


# PUBLIC_INTERFACE
def find_duplicates(
    products: Sequence[Mapping[str, Any]], threshold: float = DEFAULT_THRESHOLD
) -> List[DuplicateMatch]:
    """Score every pair (O(n^2)) and return those at or above threshold, best first."""
    matches: List[DuplicateMatch] = []
    for i in range(len(products)):
        for j in range(i + 1, len(products)):
            score, field_scores = compare_products(products[i], products[j])
            if score >= threshold:
                matches.append(
                    DuplicateMatch(
                        left=dict(products[i]),
                        right=dict(products[j]),
                        score=score,
                        action=_action_for(score),
                        field_scores=field_scores,
                    )
                )
    matches.sort(key=lambda m: m.score, reverse=True)
    return matches


# PUBLIC_INTERFACE
def merge_records(primary: Mapping[str, Any], duplicate: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep primary values, fill its blanks from duplicate, union tags."""
    merged = dict(primary)
    for key, value in duplicate.items():
        if key == "tags":
            continue
        if _is_blank(merged.get(key)) and not _is_blank(value):
            merged[key] = value

    tags: List[str] = []
    for tag in list(primary.get("tags") or []) + list(duplicate.get("tags") or []):
        if tag not in tags:
            tags.append(tag)
    merged["tags"] = tags
    return merged


def _best_match(row: Mapping[str, Any], candidates: Iterable[Mapping[str, Any]]):
    best = None
    best_score = 0.0
    best_fields: Dict[str, float] = {}
    for candidate in candidates:
        score, field_scores = compare_products(row, candidate)
        if score > best_score:
            best, best_score, best_fields = candidate, score, field_scores
    return best, best_score, best_fields


# PUBLIC_INTERFACE
def dedupe_import(
    incoming: Sequence[Mapping[str, Any]],
    existing: Sequence[Mapping[str, Any]],
    threshold: float = DEFAULT_THRESHOLD,
) -> DedupReport:
    """
    Plan an import against the current catalog.

    Rows scoring at least MERGE_THRESHOLD against an existing product become
    merges into it; rows in the review band are reported and not written; the
    rest are created. Near-identical rows within the batch collapse into the
    first occurrence and count as skipped.
    """
    report = DedupReport()
    batch: List[Dict[str, Any]] = []

    for row in incoming:
        if _is_blank(row.get("name")):
            report.skipped += 1
            continue

        twin, twin_score, _ = _best_match(row, batch)
        if twin is not None and twin_score >= MERGE_THRESHOLD:
            twin.update(merge_records(twin, row))
            report.skipped += 1
            continue

        target, score, field_scores = _best_match(row, existing)
        if target is not None and score >= MERGE_THRESHOLD:
            merged = merge_records(target, row)
            report.merged.append(merged)
            batch.append(merged)
        elif target is not None and score >= threshold:
            report.review.append(
                DuplicateMatch(
                    left=dict(row),
                    right=dict(target),
                    score=score,
                    action="review",
                    field_scores=field_scores,
                )
            )
        else:
            created = dict(row)
            report.created.append(created)
            batch.append(created)
    return report
