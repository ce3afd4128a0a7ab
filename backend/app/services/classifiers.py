"""Rule based classifiers producing ranked category signals for tweet text."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
import logging

logger = logging.getLogger(__name__)

GENERAL_CATEGORY = "General"

# Curated keyword/phrase lists per category. Matching is substring containment
# on lower-cased text, so "app" also matches inside "happy".
CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "Technology": [
        "javascript", "python", "react", "node", "programming", "developer",
        "coding", "software", "ai", "machine learning",
        "artificial intelligence", "tech", "startup", "app", "web", "database",
        "api", "framework", "library", "github", "code", "development",
        "frontend", "backend", "fullstack", "devops", "cloud", "aws", "docker",
        "kubernetes",
    ],
    "News": [
        "breaking", "news", "update", "report", "announces", "confirmed",
        "official", "press", "government", "politics", "economy", "market",
        "election", "policy", "crisis", "event", "happened", "breaking news",
        "urgent", "alert", "announced", "statement",
    ],
    "Education": [
        "learn", "learning", "education", "tutorial", "guide", "how to", "tips",
        "course", "training", "skill", "knowledge", "study", "research",
        "academic", "university", "school", "teaching", "lesson", "workshop",
        "certification", "degree",
    ],
    "Inspiration": [
        "motivation", "inspiration", "quote", "wisdom", "success", "mindset",
        "growth", "achievement", "goal", "dream", "believe", "inspire",
        "motivated", "positive", "life lesson", "advice", "encourage",
        "perseverance", "determination",
    ],
    "Entertainment": [
        "movie", "film", "music", "game", "gaming", "entertainment", "fun",
        "funny", "meme", "video", "show", "series", "netflix", "spotify",
        "youtube", "streaming", "celebrity", "actor", "singer", "artist",
        "comedy",
    ],
    "Sports": [
        "football", "soccer", "basketball", "tennis", "sports", "game", "match",
        "player", "team", "score", "goal", "win", "championship", "league",
        "tournament", "athlete", "fitness", "workout", "training", "exercise",
        "gym",
    ],
    "Business": [
        "business", "entrepreneur", "startup", "company", "investment",
        "finance", "money", "market", "stock", "revenue", "profit", "strategy",
        "marketing", "sales", "customer", "product", "service", "brand",
        "growth", "innovation", "leadership", "management",
    ],
}

# Domains and hashtags that hint at a category. Hashtags weigh double.
CONTEXT_INDICATORS: Dict[str, List[str]] = {
    "Technology": [
        "github.com", "stackoverflow.com", "dev.to", "medium.com/@tech",
        "#programming", "#coding", "#javascript", "#python", "#react",
    ],
    "News": [
        "cnn.com", "bbc.com", "reuters.com", "nytimes.com",
        "#breaking", "#news", "#update",
    ],
    "Education": [
        "coursera.org", "udemy.com", "khan", "education",
        "#learning", "#tutorial", "#education",
    ],
    "Business": [
        "linkedin.com", "forbes.com", "bloomberg.com",
        "#business", "#startup", "#entrepreneur",
    ],
}


@dataclass
class CategorySignal:
    """One classifier's opinion about one category."""

    category: str
    confidence: float
    method: str
    is_primary: bool = False
    details: Dict[str, Any] = field(default_factory=dict)


class KeywordClassifier:
    """Scores text against per-category keyword and phrase lists."""

    method = "keywords"
    primary_threshold = 0.6
    min_confidence = 0.3

    def __init__(self, keywords: Optional[Dict[str, List[str]]] = None):
        source = keywords if keywords is not None else CATEGORY_KEYWORDS
        self.keywords = {
            category: [k.lower() for k in words] for category, words in source.items()
        }

    def classify(self, text) -> List[CategorySignal]:
        if not text or not isinstance(text, str):
            return []
        content = text.lower()

        matches_by_category: Dict[str, int] = {}
        total_matches = 0
        for category, words in self.keywords.items():
            matches = sum(1 for word in words if word in content)
            if matches:
                matches_by_category[category] = matches
                total_matches += matches

        signals = [
            CategorySignal(
                category=category,
                confidence=min(
                    max(self.min_confidence, matches / max(total_matches, 1)), 1.0
                ),
                method=self.method,
                details={"matches": matches, "total_matches": total_matches},
            )
            for category, matches in matches_by_category.items()
        ]
        return _rank(signals, self.primary_threshold)

    def add_custom_keywords(self, category: str, keywords: List[str]) -> None:
        """Extend (or create) a category's keyword list at runtime."""
        self.keywords.setdefault(category, [])
        self.keywords[category].extend(k.lower() for k in keywords)
        logger.info(f"Added {len(keywords)} keywords to category {category}")


class ContextClassifier:
    """Scores text against domain and hashtag indicators."""

    method = "context"
    primary_threshold = 0.5

    def __init__(self, indicators: Optional[Dict[str, List[str]]] = None):
        source = indicators if indicators is not None else CONTEXT_INDICATORS
        self.indicators = {
            category: [p.lower() for p in patterns]
            for category, patterns in source.items()
        }

    def classify(self, text) -> List[CategorySignal]:
        if not text or not isinstance(text, str):
            return []
        content = text.lower()

        signals = []
        for category, patterns in self.indicators.items():
            score = sum(
                2 if pattern.startswith("#") else 1
                for pattern in patterns
                if pattern in content
            )
            if score:
                signals.append(
                    CategorySignal(
                        category=category,
                        confidence=min(0.3 + score * 0.2, 0.9),
                        method=self.method,
                        details={"context_matches": score},
                    )
                )
        return _rank(signals, self.primary_threshold)


def _rank(signals: List[CategorySignal], primary_threshold: float) -> List[CategorySignal]:
    """Sort descending and flag the top entry when it clears the threshold."""
    signals.sort(key=lambda s: s.confidence, reverse=True)
    if signals and signals[0].confidence > primary_threshold:
        signals[0].is_primary = True
    return signals
