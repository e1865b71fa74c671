"""Discovery ranking for related books.

Ranks a pool of candidate books against a source book. Plain nearest
neighbours make dull recommendations, so the score mixes a similarity
signal with bonuses for exploratory picks, and the final list is spread
over five categories according to a quota table.

Scoring:
    similarity = 0.40 * tag Jaccard
               + 0.25 * min(1, author 0.7 + region 0.2 + translator 0.3)
               + 0.20 * category (exact 1.0, same top-level prefix 0.6)
               + 0.15 * purchase-date proximity (linear to 0 over 365 days)
    discovery  = sum of bonuses (author exploration, cultural bridge,
                 genre discovery, popularity, serendipity)
    total      = 0.7 * similarity + 0.3 * discovery

Candidates with ``total <= 0.15`` are dropped.

This module does no I/O; books are plain dicts with ``id``, ``author``,
``region``, ``translated``, ``copyrighter``, ``category``, ``purchdate``,
``tags`` and ``total_visits``.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

# Most recent shelved books considered per request
DISCOVERY_POOL_SIZE = 800

ADMISSION_THRESHOLD = 0.15

SIMILARITY_WEIGHT = 0.7
DISCOVERY_WEIGHT = 0.3

TAG_WEIGHT = 0.4
PEOPLE_WEIGHT = 0.25
CATEGORY_WEIGHT = 0.2
DATE_WEIGHT = 0.15

AUTHOR_MATCH = 0.7
REGION_MATCH = 0.2
TRANSLATOR_MATCH = 0.3

CATEGORY_EXACT = 1.0
CATEGORY_PREFIX = 0.6

DATE_WINDOW_DAYS = 365

AUTHOR_EXPLORATION_BONUS = 0.3
CULTURAL_BRIDGE_BONUS = 0.25
GENRE_DISCOVERY_BONUS = 0.2
POPULARITY_BONUS = 0.1
SERENDIPITY_BONUS = 0.3

POPULAR_VISITS = 100
SERENDIPITY_VISITS = 500
SERENDIPITY_SIMILARITY = (0.05, 0.2)

_CATEGORY_SEPARATOR = re.compile(r"[./\-]")


class DiscoveryCategory(str, Enum):
    """Why a book was recommended."""

    SIMILAR = "similar"
    AUTHOR_EXPLORATION = "author_exploration"
    CULTURAL_BRIDGE = "cultural_bridge"
    GENRE_DISCOVERY = "genre_discovery"
    SERENDIPITY = "serendipity"


# Quota order; also the tie-break order when splitting remainders
CATEGORY_ORDER: tuple[DiscoveryCategory, ...] = (
    DiscoveryCategory.SIMILAR,
    DiscoveryCategory.AUTHOR_EXPLORATION,
    DiscoveryCategory.CULTURAL_BRIDGE,
    DiscoveryCategory.GENRE_DISCOVERY,
    DiscoveryCategory.SERENDIPITY,
)

# (max requested count, shares in CATEGORY_ORDER); last tier is open-ended
DISTRIBUTION_TIERS: tuple[tuple[int | None, tuple[float, ...]], ...] = (
    (3, (0.6, 0.2, 0.2, 0.0, 0.0)),
    (5, (0.4, 0.2, 0.2, 0.2, 0.0)),
    (None, (0.3, 0.2, 0.2, 0.2, 0.1)),
)

# Tags one step away from a given tag, for genre discovery
ADJACENT_GENRES: dict[str, frozenset[str]] = {
    "文学": frozenset({"小说", "诗歌", "散文", "戏剧"}),
    "小说": frozenset({"文学", "推理", "科幻", "武侠"}),
    "经典": frozenset({"文学", "名著", "哲学"}),
    "名著": frozenset({"经典", "文学", "小说"}),
    "诗歌": frozenset({"散文", "文学", "词"}),
    "散文": frozenset({"随笔", "诗歌", "文学"}),
    "随笔": frozenset({"散文", "杂文", "传记"}),
    "历史": frozenset({"传记", "政治", "考古", "文化"}),
    "传记": frozenset({"历史", "回忆录", "随笔"}),
    "哲学": frozenset({"宗教", "心理学", "思想", "经典"}),
    "心理学": frozenset({"哲学", "社会学"}),
    "社会学": frozenset({"政治", "经济", "心理学", "文化"}),
    "政治": frozenset({"历史", "社会学", "经济"}),
    "经济": frozenset({"管理", "社会学", "政治"}),
    "科幻": frozenset({"小说", "科普", "奇幻"}),
    "奇幻": frozenset({"科幻", "小说", "童话"}),
    "推理": frozenset({"小说", "悬疑"}),
    "悬疑": frozenset({"推理", "小说"}),
    "武侠": frozenset({"小说", "历史"}),
    "科普": frozenset({"科学", "科幻", "技术"}),
    "科学": frozenset({"科普", "数学", "技术"}),
    "艺术": frozenset({"设计", "摄影", "音乐", "美术"}),
    "文化": frozenset({"历史", "艺术", "社会学"}),
}


@dataclass
class DiscoveryCandidate:
    """A scored candidate.

    Attributes:
        book: Candidate book dict
        similarity_score: Weighted similarity in [0, 1]
        discovery_score: Sum of discovery bonuses
        total_score: 0.7 * similarity + 0.3 * discovery
        category: Label of the highest-priority bonus that fired
        reasons: Human-readable explanations
        factors: Signals that contributed
    """

    book: dict[str, Any]
    similarity_score: float = 0.0
    discovery_score: float = 0.0
    total_score: float = 0.0
    category: DiscoveryCategory = DiscoveryCategory.SIMILAR
    reasons: list[str] = field(default_factory=list)
    factors: set[str] = field(default_factory=set)

    @property
    def book_id(self) -> Any:
        return self.book.get("id")


@dataclass
class DiscoveryResult:
    """Outcome of one ranking run.

    Attributes:
        selected: Chosen candidates, total score descending
        pool_size: Number of candidates scored
        passing: Number of candidates above the admission threshold
        tier: Requested-count tier used for quotas ("<=3", "<=5", ">5")
        quotas: Target count per category
    """

    selected: list[DiscoveryCandidate]
    pool_size: int
    passing: int
    tier: str
    quotas: dict[DiscoveryCategory, int]

    def category_counts(self) -> dict[str, int]:
        counts = {category.value: 0 for category in CATEGORY_ORDER}
        for candidate in self.selected:
            counts[candidate.category.value] += 1
        return counts


def _tag_set(book: dict[str, Any]) -> set[str]:
    return {tag for tag in (book.get("tags") or []) if tag}


def _text(book: dict[str, Any], key: str) -> str:
    return str(book.get(key) or "").strip()


def _parse_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def tag_similarity(source_tags: set[str], candidate_tags: set[str]) -> float:
    """Jaccard index of two tag sets; 0 when both are empty."""
    union = source_tags | candidate_tags
    if not union:
        return 0.0
    return len(source_tags & candidate_tags) / len(union)


def category_similarity(source: str, candidate: str) -> float:
    """1.0 for the same category, 0.6 for the same top-level class."""
    if not source or not candidate:
        return 0.0
    if source == candidate:
        return CATEGORY_EXACT
    source_top = _CATEGORY_SEPARATOR.split(source, maxsplit=1)[0]
    candidate_top = _CATEGORY_SEPARATOR.split(candidate, maxsplit=1)[0]
    if source_top and source_top == candidate_top:
        return CATEGORY_PREFIX
    return 0.0


def date_proximity(source: Any, candidate: Any) -> float:
    """Linear decay from 1 (same day) to 0 (a year or more apart)."""
    source_date = _parse_date(source)
    candidate_date = _parse_date(candidate)
    if source_date is None or candidate_date is None:
        return 0.0
    gap = abs((source_date - candidate_date).days)
    return max(0.0, 1.0 - gap / DATE_WINDOW_DAYS)


def compute_quotas(count: int) -> tuple[str, dict[DiscoveryCategory, int]]:
    """Per-category targets for ``count`` results.

    Shares come from the tier matching ``count``; whole slots are handed
    out first and leftovers go to the largest fractional parts, so the
    quotas always sum to ``count``.

    Returns:
        Tuple of (tier label, quotas by category)
    """
    shares: tuple[float, ...] = DISTRIBUTION_TIERS[-1][1]
    tier = f">{DISTRIBUTION_TIERS[-2][0]}"
    for limit, tier_shares in DISTRIBUTION_TIERS:
        if limit is not None and count <= limit:
            shares = tier_shares
            tier = f"<={limit}"
            break

    raw = [share * count for share in shares]
    quotas = [math.floor(value) for value in raw]
    leftover = count - sum(quotas)
    by_remainder = sorted(
        range(len(raw)), key=lambda index: (-(raw[index] - quotas[index]), index)
    )
    for index in by_remainder[:leftover]:
        quotas[index] += 1

    return tier, dict(zip(CATEGORY_ORDER, quotas, strict=True))


class DiscoveryRanker:
    """Score and select related books for a source book.

    Usage:
        ```python
        result = DiscoveryRanker().rank(source, candidates, count=5)
        for candidate in result.selected:
            print(candidate.book["title"], candidate.category)
        ```
    """

    def __init__(self, adjacent_genres: dict[str, frozenset[str]] | None = None) -> None:
        self.adjacent_genres = ADJACENT_GENRES if adjacent_genres is None else adjacent_genres

    def _adjacent_to(self, tags: set[str]) -> set[str]:
        adjacent: set[str] = set()
        for tag in tags:
            adjacent |= self.adjacent_genres.get(tag, frozenset())
        return adjacent - tags

    def score(
        self,
        source: dict[str, Any],
        book: dict[str, Any],
        adjacent: set[str] | None = None,
    ) -> DiscoveryCandidate:
        """Score one candidate against the source book."""
        candidate = DiscoveryCandidate(book=book)
        source_tags = _tag_set(source)
        book_tags = _tag_set(book)
        shared = source_tags & book_tags
        if adjacent is None:
            adjacent = self._adjacent_to(source_tags)

        # Similarity
        tags = tag_similarity(source_tags, book_tags)
        if shared:
            candidate.factors.add("tags")
            candidate.reasons.append(f"Shares tags: {', '.join(sorted(shared))}")

        same_author = bool(_text(source, "author")) and _text(source, "author") == _text(
            book, "author"
        )
        same_region = bool(_text(source, "region")) and _text(source, "region") == _text(
            book, "region"
        )
        same_translator = (
            bool(source.get("translated"))
            and bool(book.get("translated"))
            and bool(_text(source, "copyrighter"))
            and _text(source, "copyrighter") == _text(book, "copyrighter")
        )
        people = 0.0
        if same_author:
            people += AUTHOR_MATCH
            candidate.factors.add("author")
            candidate.reasons.append(f"Also by {_text(book, 'author')}")
        if same_region:
            people += REGION_MATCH
            candidate.factors.add("region")
        if same_translator:
            people += TRANSLATOR_MATCH
            candidate.factors.add("translator")
            candidate.reasons.append(f"Same translator: {_text(book, 'copyrighter')}")
        people = min(1.0, people)

        category = category_similarity(_text(source, "category"), _text(book, "category"))
        if category:
            candidate.factors.add("category")

        proximity = date_proximity(source.get("purchdate"), book.get("purchdate"))
        if proximity:
            candidate.factors.add("purchase_date")

        candidate.similarity_score = (
            TAG_WEIGHT * tags
            + PEOPLE_WEIGHT * people
            + CATEGORY_WEIGHT * category
            + DATE_WEIGHT * proximity
        )

        # Discovery bonuses; labels in ascending priority, last one wins
        labels: list[DiscoveryCategory] = []
        bonus = 0.0
        visits = int(book.get("total_visits") or 0)

        genre_hits = book_tags & adjacent
        if genre_hits:
            bonus += GENRE_DISCOVERY_BONUS
            labels.append(DiscoveryCategory.GENRE_DISCOVERY)
            candidate.reasons.append(f"Neighbouring genre: {', '.join(sorted(genre_hits))}")

        if not same_author and 1 <= len(shared) <= 2:
            bonus += AUTHOR_EXPLORATION_BONUS
            labels.append(DiscoveryCategory.AUTHOR_EXPLORATION)
            candidate.reasons.append("Different author on a shared theme")

        if (
            _text(book, "region")
            and _text(source, "region")
            and not same_region
            and shared
        ):
            bonus += CULTURAL_BRIDGE_BONUS
            labels.append(DiscoveryCategory.CULTURAL_BRIDGE)
            candidate.reasons.append(f"Same theme from {_text(book, 'region')}")

        if visits > POPULAR_VISITS:
            bonus += POPULARITY_BONUS
            candidate.factors.add("popular")

        low, high = SERENDIPITY_SIMILARITY
        if visits > SERENDIPITY_VISITS and low < candidate.similarity_score < high:
            bonus += SERENDIPITY_BONUS
            labels.append(DiscoveryCategory.SERENDIPITY)
            candidate.reasons.append("A popular book off the beaten path")

        candidate.discovery_score = bonus
        if labels:
            candidate.category = labels[-1]
        candidate.total_score = (
            SIMILARITY_WEIGHT * candidate.similarity_score
            + DISCOVERY_WEIGHT * candidate.discovery_score
        )
        return candidate

    def rank(
        self,
        source: dict[str, Any],
        candidates: list[dict[str, Any]],
        count: int,
    ) -> DiscoveryResult:
        """Pick up to ``count`` related books from ``candidates``.

        Args:
            source: The book recommendations are for
            candidates: Pool of other books (the source itself is skipped)
            count: Number of results wanted

        Returns:
            DiscoveryResult with ``min(count, passing)`` selected candidates
        """
        adjacent = self._adjacent_to(_tag_set(source))
        scored = [
            self.score(source, book, adjacent)
            for book in candidates
            if book.get("id") != source.get("id")
        ]
        passing = [c for c in scored if c.total_score > ADMISSION_THRESHOLD]
        passing.sort(key=lambda c: c.total_score, reverse=True)

        tier, quotas = compute_quotas(count)

        selected: list[DiscoveryCandidate] = []
        chosen: set[Any] = set()
        for category in CATEGORY_ORDER:
            quota = quotas[category]
            if quota <= 0:
                continue
            for candidate in passing:
                if quota == 0:
                    break
                if candidate.category == category and candidate.book_id not in chosen:
                    selected.append(candidate)
                    chosen.add(candidate.book_id)
                    quota -= 1

        # Backfill empty category slots from the overall ranking
        for candidate in passing:
            if len(selected) >= count:
                break
            if candidate.book_id not in chosen:
                selected.append(candidate)
                chosen.add(candidate.book_id)

        selected.sort(key=lambda c: c.total_score, reverse=True)

        logger.debug(
            "discovery_ranked",
            source_id=source.get("id"),
            pool_size=len(scored),
            passing=len(passing),
            selected=len(selected),
            tier=tier,
        )
        return DiscoveryResult(
            selected=selected,
            pool_size=len(scored),
            passing=len(passing),
            tier=tier,
            quotas=quotas,
        )
