from __future__ import annotations

from typing import List

from reference_engine.config import SimilarityWeights
from reference_engine.core.matching import content_words, dice_coefficient, jaccard
from reference_engine.core.models import ExtractedContent, SearchResult, SimilarityScore, clamp

KEYWORD_LIMIT = 10
TOPIC_LIMIT = 5


def result_text(result: SearchResult) -> str:
    return f"{result.title} {result.abstract or ''}".strip().lower()


def result_keywords(result: SearchResult) -> List[str]:
    """Keywords carried by ``result``, or terms extracted from its title and abstract."""

    if result.keywords:
        return list(result.keywords)
    return content_words(result_text(result), min_length=4, limit=KEYWORD_LIMIT)


def result_topics(result: SearchResult) -> List[str]:
    """Topic terms from journal words (>3 letters) and title words (>5 letters)."""

    candidates: List[str] = []
    if result.journal:
        candidates.extend(word for word in result.journal.lower().split() if len(word) > 3)
    candidates.extend(word for word in (result.title or "").lower().split() if len(word) > 5)

    topics: List[str] = []
    for word in candidates:
        if word not in topics:
            topics.append(word)
        if len(topics) >= TOPIC_LIMIT:
            break
    return topics


class SimilarityService:
    """Compare two results, or a result and the originating research content.

    The weighted ``overall`` score ranks content relevance only. Duplicate
    detection uses :meth:`DuplicateDetectionService.records_match` instead.
    """

    def __init__(self, weights: SimilarityWeights | None = None) -> None:
        self.weights = weights or SimilarityWeights()

    def similarity(self, a: SearchResult, b: SearchResult) -> SimilarityScore:
        return self._score(
            dice_coefficient(result_text(a), result_text(b)),
            jaccard(result_keywords(a), result_keywords(b)),
            jaccard(result_topics(a), result_topics(b)),
        )

    def content_similarity(self, result: SearchResult, content: ExtractedContent) -> SimilarityScore:
        return self._score(
            dice_coefficient(result_text(result), (content.content or "").lower()),
            jaccard(content.keywords, result_keywords(result)),
            jaccard(content.topics, result_topics(result)),
        )

    def _score(self, text: float, keyword: float, topic: float) -> SimilarityScore:
        text, keyword, topic = clamp(text), clamp(keyword), clamp(topic)
        overall = (
            text * self.weights.text
            + keyword * self.weights.keyword
            + topic * self.weights.topic
        )
        return SimilarityScore(
            text_similarity=text,
            keyword_match=keyword,
            topic_overlap=topic,
            overall=clamp(overall),
        )
