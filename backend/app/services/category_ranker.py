"""Merges keyword, AI and context signals into one ranked category set."""

from dataclasses import dataclass, field
from typing import Any, Dict, List
from app.services.classifiers import CategorySignal, GENERAL_CATEGORY

METHOD_WEIGHTS = {
    "keywords": 1.2,
    "ai": 1.0,
    "context": 0.8,
}

MAX_CATEGORIES = 5
PRIMARY_THRESHOLD = 0.4
FALLBACK_CONFIDENCE = 0.3


@dataclass
class CategoryResult:
    category: str
    confidence: float
    is_primary: bool = False
    methods: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "confidence": self.confidence,
            "is_primary": self.is_primary,
            "methods": list(self.methods),
            "details": dict(self.details),
        }


def fallback_result() -> CategoryResult:
    """The General category used whenever no signal fired."""
    return CategoryResult(
        category=GENERAL_CATEGORY,
        confidence=FALLBACK_CONFIDENCE,
        is_primary=True,
        methods=["fallback"],
    )


class CategoryRanker:
    """
    Combines signals per category with a running weighted average.

    The first signal of a category seeds ``confidence * weight``; every later
    one updates ``combined = (combined + confidence * weight) / 2``. The result
    is order dependent (the last contributor carries half the weight); callers
    feed signals in keywords, ai, context order.
    """

    def __init__(
        self,
        weights: Dict[str, float] = None,
        max_categories: int = MAX_CATEGORIES,
        primary_threshold: float = PRIMARY_THRESHOLD,
    ):
        self.weights = weights or METHOD_WEIGHTS
        self.max_categories = max_categories
        self.primary_threshold = primary_threshold

    def rank(self, signals: List[CategorySignal]) -> List[CategoryResult]:
        grouped: Dict[str, CategoryResult] = {}

        for signal in signals:
            weighted = signal.confidence * self.weights.get(signal.method, 1.0)
            existing = grouped.get(signal.category)
            if existing is None:
                grouped[signal.category] = CategoryResult(
                    category=signal.category,
                    confidence=weighted,
                    methods=[signal.method],
                    details=dict(signal.details),
                )
                continue

            existing.confidence = (existing.confidence + weighted) / 2
            if signal.method not in existing.methods:
                existing.methods.append(signal.method)
            existing.details.update(signal.details)

        results = list(grouped.values())
        for result in results:
            result.confidence = min(max(result.confidence, 0.0), 1.0)

        # sorted() is stable, ties keep encounter order
        results = sorted(results, key=lambda r: r.confidence, reverse=True)
        results = results[: self.max_categories]

        if results and results[0].confidence > self.primary_threshold:
            results[0].is_primary = True
        return results
