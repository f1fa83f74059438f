"""Aggregates user feedback into metrics, trends and improvement suggestions."""

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

from analytics.service import AnalyticsService
from core.log import get_logger
from memory.store import StorageError
from memory.types import FeedbackCategory, FeedbackEntry, LogFilter, utcnow

logger = get_logger(__name__)

MIN_TREND_POINTS = 10
TREND_THRESHOLD = 0.5
IMPROVEMENT_AREA_THRESHOLD = 3.5
MAX_THEMES = 5
MAX_THEME_EXAMPLES = 3
ANALYSIS_LIMIT = 1000

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

CATEGORY_SUGGESTIONS = {
    FeedbackCategory.HELPFULNESS: "Provide more actionable advice and relevant suggestions",
    FeedbackCategory.ACCURACY: "Improve fact-checking and provide reliable information sources",
    FeedbackCategory.CLARITY: "Use clearer language and better structure responses",
    FeedbackCategory.SPEED: "Optimize response generation for faster performance",
    FeedbackCategory.PERSONALITY: "Adjust communication style to be more engaging and personable",
}

# (type, suggestion, priority) for a category rated 2 or lower on one response.
RESPONSE_CATEGORY_RULES = {
    FeedbackCategory.HELPFULNESS: ("content", "Provide more actionable and relevant suggestions", "high"),
    FeedbackCategory.ACCURACY: ("content", "Verify information accuracy and provide sources when possible", "high"),
    FeedbackCategory.CLARITY: ("communication", "Use clearer language and better structure responses", "medium"),
    FeedbackCategory.SPEED: ("performance", "Optimize response generation for faster replies", "medium"),
    FeedbackCategory.PERSONALITY: ("communication", "Adjust tone and personality to be more engaging", "low"),
}

# (keywords, type, suggestion, priority, category) scanned in free-text comments.
COMMENT_RULES = [
    (("too long", "verbose"), "communication", "Make responses more concise and to the point", "medium", "clarity"),
    (
        ("too short", "more detail"),
        "content",
        "Provide more detailed explanations and examples",
        "medium",
        "helpfulness",
    ),
    (("slow", "taking too long"), "performance", "Improve response time and processing speed", "high", "speed"),
]

THEME_KEYWORDS = {
    "response_length": ("too long", "verbose", "concise", "brief"),
    "response_speed": ("slow", "fast", "quick", "time"),
    "accuracy": ("wrong", "correct", "accurate", "mistake"),
    "helpfulness": ("helpful", "useful", "useless", "not helpful"),
    "personality": ("friendly", "rude", "tone", "personality"),
}


@dataclass
class RatingBucket:
    rating: int
    count: int
    percentage: float


@dataclass
class OverallMetrics:
    average_rating: float = 0.0
    satisfaction_rate: float = 0.0
    rating_distribution: list[RatingBucket] = field(default_factory=list)
    total_responses: int = 0


@dataclass
class CategoryAnalysis:
    category: str
    average_rating: float
    total_ratings: int


@dataclass
class FeedbackTrend:
    type: str  # "improvement" | "decline"
    description: str
    confidence: float = 0.7


@dataclass
class Suggestion:
    issue: str
    suggestion: str
    priority: str
    category: str
    impact: str = "medium"


@dataclass
class ResponseImprovement:
    type: str
    suggestion: str
    priority: str
    category: str


@dataclass
class CommonTheme:
    theme: str
    frequency: int
    examples: list[str]


@dataclass
class FeedbackAnalysis:
    overall_metrics: OverallMetrics = field(default_factory=OverallMetrics)
    category_analysis: list[CategoryAnalysis] = field(default_factory=list)
    trends: list[FeedbackTrend] = field(default_factory=list)
    suggestions: list[Suggestion] = field(default_factory=list)
    common_themes: list[CommonTheme] = field(default_factory=list)
    total_feedbacks: int = 0
    start_date: datetime | None = None
    end_date: datetime | None = None

    @property
    def average_rating(self) -> float:
        return self.overall_metrics.average_rating

    @property
    def satisfaction_rate(self) -> float:
        return self.overall_metrics.satisfaction_rate

    def to_dict(self) -> dict:
        return {
            **asdict(self),
            "average_rating": self.average_rating,
            "satisfaction_rate": self.satisfaction_rate,
        }


@dataclass
class FeedbackSummary:
    days: int
    start_date: datetime
    end_date: datetime
    average_rating: float = 0.0
    total_feedbacks: int = 0
    satisfaction_rate: float = 0.0
    top_issues: list[str] = field(default_factory=list)
    improvement_areas: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _sorted_by_priority(items: list) -> list:
    return sorted(items, key=lambda s: PRIORITY_ORDER[s.priority])


class FeedbackAnalysisService:
    def __init__(self, analytics: AnalyticsService):
        self.analytics = analytics

    async def analyze_patterns(
        self, start_date: datetime | None = None, end_date: datetime | None = None
    ) -> FeedbackAnalysis:
        records = await self.analytics.get_records(
            LogFilter(start_date=start_date, end_date=end_date, limit=ANALYSIS_LIMIT)
        )
        rated = sorted((e for e in records if e.feedback is not None), key=lambda e: e.record.timestamp)
        if not rated:
            return FeedbackAnalysis(start_date=start_date, end_date=end_date)

        feedbacks = [e.feedback for e in rated if e.feedback is not None]
        metrics = self._overall_metrics(feedbacks)
        categories = self._category_analysis(feedbacks)
        trends = self._trends(feedbacks)

        return FeedbackAnalysis(
            overall_metrics=metrics,
            category_analysis=categories,
            trends=trends,
            suggestions=self._suggestions(metrics, categories, trends, feedbacks),
            common_themes=self._common_themes(feedbacks),
            total_feedbacks=len(feedbacks),
            start_date=start_date or rated[0].record.timestamp,
            end_date=end_date or rated[-1].record.timestamp,
        )

    async def summarize(self, days: int = 7) -> FeedbackSummary:
        end_date = utcnow()
        start_date = end_date - timedelta(days=days)
        summary = FeedbackSummary(days=days, start_date=start_date, end_date=end_date)
        try:
            analysis = await self.analyze_patterns(start_date, end_date)
        except StorageError as e:
            logger.error("Failed to summarize feedback: %s", e)
            return summary

        summary.average_rating = analysis.average_rating
        summary.total_feedbacks = analysis.total_feedbacks
        summary.satisfaction_rate = analysis.satisfaction_rate
        summary.top_issues = [s.issue for s in analysis.suggestions if s.priority == "high"][:3]
        summary.improvement_areas = [
            c.category
            for c in analysis.category_analysis
            if c.total_ratings and c.average_rating < IMPROVEMENT_AREA_THRESHOLD
        ]
        return summary

    def suggest_improvements(self, feedback: FeedbackEntry, response_text: str = "") -> list[ResponseImprovement]:
        """Suggestions for a single rated response."""
        improvements: list[ResponseImprovement] = []
        if feedback.rating <= 2:
            improvements.append(
                ResponseImprovement(
                    "overall", "Consider providing more helpful and accurate information", "high", "helpfulness"
                )
            )
        for rating in feedback.categories:
            if rating.rating <= 2:
                kind, text, priority = RESPONSE_CATEGORY_RULES[rating.category]
                improvements.append(ResponseImprovement(kind, text, priority, rating.category.value))

        comment = (feedback.comment or "").lower()
        for keywords, kind, text, priority, category in COMMENT_RULES:
            if any(k in comment for k in keywords):
                improvements.append(ResponseImprovement(kind, text, priority, category))
        return _sorted_by_priority(improvements)

    @staticmethod
    def _overall_metrics(feedbacks: list[FeedbackEntry]) -> OverallMetrics:
        ratings = [f.rating for f in feedbacks]
        total = len(ratings)
        counts = Counter(ratings)
        return OverallMetrics(
            average_rating=round(sum(ratings) / total, 2),
            satisfaction_rate=round(sum(1 for r in ratings if r >= 4) / total, 2),
            rating_distribution=[RatingBucket(r, counts[r], counts[r] / total * 100) for r in range(1, 6)],
            total_responses=total,
        )

    @staticmethod
    def _category_analysis(feedbacks: list[FeedbackEntry]) -> list[CategoryAnalysis]:
        result = []
        for category in FeedbackCategory:
            ratings = [c.rating for f in feedbacks for c in f.categories if c.category == category]
            avg = round(sum(ratings) / len(ratings), 2) if ratings else 0.0
            result.append(CategoryAnalysis(category.value, avg, len(ratings)))
        return result

    @staticmethod
    def _trends(feedbacks: list[FeedbackEntry]) -> list[FeedbackTrend]:
        # Expects chronological order.
        if len(feedbacks) < MIN_TREND_POINTS:
            return []
        mid = len(feedbacks) // 2
        older = [f.rating for f in feedbacks[:mid]]
        recent = [f.rating for f in feedbacks[mid:]]
        older_avg = sum(older) / len(older)
        recent_avg = sum(recent) / len(recent)
        if recent_avg > older_avg + TREND_THRESHOLD:
            return [FeedbackTrend("improvement", "User satisfaction has been improving recently")]
        if recent_avg < older_avg - TREND_THRESHOLD:
            return [FeedbackTrend("decline", "User satisfaction has been declining recently")]
        return []

    @staticmethod
    def _suggestions(
        metrics: OverallMetrics,
        categories: list[CategoryAnalysis],
        trends: list[FeedbackTrend],
        feedbacks: list[FeedbackEntry],
    ) -> list[Suggestion]:
        suggestions: list[Suggestion] = []
        if metrics.average_rating < 3.0:
            suggestions.append(
                Suggestion(
                    "Low overall satisfaction",
                    "Focus on improving response quality and helpfulness",
                    "high",
                    "overall",
                    "high",
                )
            )
        for c in categories:
            if c.total_ratings and c.average_rating < 3.0:
                suggestions.append(
                    Suggestion(
                        f"Low {c.category} ratings",
                        CATEGORY_SUGGESTIONS[FeedbackCategory(c.category)],
                        "high" if c.average_rating < 2.5 else "medium",
                        c.category,
                    )
                )
        if any(t.type == "decline" for t in trends):
            suggestions.append(
                Suggestion(
                    "Declining user satisfaction",
                    "Investigate recent changes and gather more detailed feedback",
                    "high",
                    "overall",
                    "high",
                )
            )

        comments = [f.comment.lower() for f in feedbacks if f.comment]
        for keywords, _kind, text, priority, category in COMMENT_RULES:
            mentions = sum(1 for c in comments if any(k in c for k in keywords))
            if mentions:
                suggestions.append(
                    Suggestion(f"{mentions} comment(s) mention {keywords[0]!r}", text, priority, category, "low")
                )
        return _sorted_by_priority(suggestions)

    @staticmethod
    def _common_themes(feedbacks: list[FeedbackEntry]) -> list[CommonTheme]:
        themes: dict[str, CommonTheme] = {}
        for f in feedbacks:
            if not f.comment:
                continue
            comment = f.comment.lower()
            for theme, keywords in THEME_KEYWORDS.items():
                if any(k in comment for k in keywords):
                    entry = themes.setdefault(theme, CommonTheme(theme, 0, []))
                    entry.frequency += 1
                    if len(entry.examples) < MAX_THEME_EXAMPLES:
                        entry.examples.append(f.comment)
        return sorted(themes.values(), key=lambda t: t.frequency, reverse=True)[:MAX_THEMES]
