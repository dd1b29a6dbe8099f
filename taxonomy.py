"""Topic vocabulary used by the heuristic fallback analysis.

Listing sites tag products with free-text topics ("Developer Tools",
"Artificial Intelligence", "SaaS", ...). Topics are compared as stemmed token
sets, so "Developer Tool" and "developer tools" land on the same entry.
"""

import re
from dataclasses import dataclass, field

# =====================================================================
# Stemmer (no external dependencies)
# =====================================================================

_STOP_WORDS = frozenset({"a", "an", "the", "and", "or", "for", "of", "in", "on", "to", "by", "with", "&"})


def _stem(word: str) -> str:
    """Simple English suffix stripping for topic matching."""
    w = word.lower()
    if len(w) < 3:
        return w
    if w.endswith("ies") and len(w) > 4:
        return w[:-3] + "y"  # "technologies" -> "technology"
    if w.endswith("es") and len(w) > 4:
        pre = w[:-2]
        if pre.endswith(("ch", "sh", "x", "ss", "zz")):
            return pre  # "searches" -> "search"
        return w[:-1]  # "services" -> "service"
    if w.endswith("s") and not w.endswith("ss") and len(w) > 3:
        return w[:-1]  # "tools" -> "tool"
    return w


def _tokenize(text: str) -> frozenset[str]:
    raw = re.findall(r"[a-z0-9]+", text.lower())
    return frozenset(_stem(t) for t in raw if len(t) > 1 and t not in _STOP_WORDS)


# =====================================================================
# Vocabularies
# =====================================================================

# Engineering-heavy products: harder to rebuild quickly
TECH_TOPICS = (
    "Developer Tools",
    "Artificial Intelligence",
    "AI",
    "API",
    "Machine Learning",
    "Infrastructure",
    "Open Source",
    "Security",
)

# Mass-market / end-user products: broader demand
CONSUMER_TOPICS = (
    "Productivity",
    "User Experience",
    "Social Media",
    "Lifestyle",
    "Health and Fitness",
    "Education",
    "Entertainment",
)

_TECH_TOKENS = [(t, _tokenize(t)) for t in TECH_TOPICS]
_CONSUMER_TOKENS = [(t, _tokenize(t)) for t in CONSUMER_TOPICS]


@dataclass(frozen=True)
class TopicProfile:
    tech: list[str] = field(default_factory=list)  # vocabulary entries matched
    consumer: list[str] = field(default_factory=list)

    @property
    def tech_heavy(self) -> bool:
        return bool(self.tech)

    @property
    def consumer_facing(self) -> bool:
        return bool(self.consumer)


def _matches(topic_tokens: frozenset[str], vocabulary: list[tuple[str, frozenset[str]]]) -> list[str]:
    return [name for name, tokens in vocabulary if tokens and tokens <= topic_tokens]


def classify_topics(topics: list[str]) -> TopicProfile:
    """Match free-text topics against the tech and consumer vocabularies."""
    tech: list[str] = []
    consumer: list[str] = []
    for topic in topics:
        tokens = _tokenize(topic)
        if not tokens:
            continue
        for name in _matches(tokens, _TECH_TOKENS):
            if name not in tech:
                tech.append(name)
        for name in _matches(tokens, _CONSUMER_TOKENS):
            if name not in consumer:
                consumer.append(name)
    return TopicProfile(tech=tech, consumer=consumer)
