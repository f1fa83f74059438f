from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import make_record

from analytics.feedback import FeedbackAnalysisService
from analytics.service import AnalyticsService
from memory.store import StorageError
from memory.types import CategoryRating, FeedbackCategory, FeedbackEntry


@pytest.fixture
def feedback_service(store):
    return FeedbackAnalysisService(AnalyticsService(store))


async def rated(store, rating: int, days_ago: float = 0, comment: str | None = None, categories=()) -> str:
    record = make_record(days_ago=days_ago)
    await store.create(record)
    await store.save_feedback(
        FeedbackEntry(interaction_id=record.id, rating=rating, comment=comment, categories=tuple(categories))
    )
    return record.id


@pytest.mark.asyncio
async def test_empty_analysis(feedback_service):
    analysis = await feedback_service.analyze_patterns()
    assert analysis.total_feedbacks == 0
    assert analysis.average_rating == 0
    assert analysis.satisfaction_rate == 0
    assert analysis.suggestions == []
    assert analysis.to_dict()["average_rating"] == 0


@pytest.mark.asyncio
async def test_unrated_records_ignored(store, feedback_service):
    await store.create(make_record())
    analysis = await feedback_service.analyze_patterns()
    assert analysis.total_feedbacks == 0


@pytest.mark.asyncio
async def test_overall_metrics(store, feedback_service):
    clarity = FeedbackCategory.CLARITY
    await rated(store, 5, days_ago=3, categories=[CategoryRating(clarity, 2)])
    await rated(store, 4, days_ago=2, comment="Way too long", categories=[CategoryRating(clarity, 1)])
    await rated(store, 2, days_ago=1)

    analysis = await feedback_service.analyze_patterns()
    assert analysis.total_feedbacks == 3
    assert analysis.average_rating == 3.67
    assert analysis.satisfaction_rate == 0.67
    buckets = {b.rating: b.count for b in analysis.overall_metrics.rating_distribution}
    assert buckets == {1: 0, 2: 1, 3: 0, 4: 1, 5: 1}
    assert analysis.start_date < analysis.end_date


@pytest.mark.asyncio
async def test_category_analysis_and_suggestions(store, feedback_service):
    clarity = FeedbackCategory.CLARITY
    await rated(store, 5, days_ago=2, categories=[CategoryRating(clarity, 2)])
    await rated(store, 4, days_ago=1, comment="Way too long", categories=[CategoryRating(clarity, 1)])

    analysis = await feedback_service.analyze_patterns()
    by_category = {c.category: c for c in analysis.category_analysis}
    assert set(by_category) == {c.value for c in FeedbackCategory}
    assert by_category["clarity"].average_rating == 1.5
    assert by_category["clarity"].total_ratings == 2
    assert by_category["speed"].total_ratings == 0

    priorities = [s.priority for s in analysis.suggestions]
    assert priorities == sorted(priorities, key=["high", "medium", "low"].index)
    issues = [s.issue for s in analysis.suggestions]
    assert "Low clarity ratings" in issues
    assert any("too long" in issue for issue in issues)

    [theme] = analysis.common_themes
    assert theme.theme == "response_length"
    assert theme.examples == ["Way too long"]


@pytest.mark.asyncio
async def test_low_overall_satisfaction(store, feedback_service):
    await rated(store, 1)
    await rated(store, 2)
    analysis = await feedback_service.analyze_patterns()
    assert analysis.suggestions[0].issue == "Low overall satisfaction"
    assert analysis.suggestions[0].priority == "high"


@pytest.mark.asyncio
async def test_improving_trend(store, feedback_service):
    for i in range(10):
        await rated(store, 1 if i < 5 else 5, days_ago=20 - i)
    analysis = await feedback_service.analyze_patterns()
    assert [t.type for t in analysis.trends] == ["improvement"]


@pytest.mark.asyncio
async def test_declining_trend(store, feedback_service):
    for i in range(10):
        await rated(store, 5 if i < 5 else 1, days_ago=20 - i)
    analysis = await feedback_service.analyze_patterns()
    assert [t.type for t in analysis.trends] == ["decline"]
    assert "Declining user satisfaction" in [s.issue for s in analysis.suggestions]


@pytest.mark.asyncio
async def test_no_trend_below_minimum(store, feedback_service):
    for i in range(9):
        await rated(store, 1 if i < 4 else 5, days_ago=20 - i)
    analysis = await feedback_service.analyze_patterns()
    assert analysis.trends == []


@pytest.mark.asyncio
async def test_summary(store, feedback_service):
    accuracy = FeedbackCategory.ACCURACY
    await rated(store, 2, days_ago=1, categories=[CategoryRating(accuracy, 2)])
    await rated(store, 4, days_ago=2, categories=[CategoryRating(accuracy, 4)])
    await rated(store, 1, days_ago=30)

    summary = await feedback_service.summarize(days=7)
    assert summary.days == 7
    assert summary.total_feedbacks == 2
    assert summary.average_rating == 3.0
    assert summary.satisfaction_rate == 0.5
    assert summary.improvement_areas == ["accuracy"]
    assert summary.to_dict()["total_feedbacks"] == 2


@pytest.mark.asyncio
async def test_summary_storage_failure():
    analytics = MagicMock()
    analytics.get_records = AsyncMock(side_effect=StorageError("locked"))
    summary = await FeedbackAnalysisService(analytics).summarize(days=3)
    assert summary.total_feedbacks == 0
    assert summary.average_rating == 0
    assert summary.top_issues == []


def test_suggest_improvements(feedback_service):
    entry = FeedbackEntry(
        interaction_id="r1",
        rating=1,
        comment="Slow and wrong",
        categories=(
            CategoryRating(FeedbackCategory.SPEED, 2),
            CategoryRating(FeedbackCategory.ACCURACY, 1),
            CategoryRating(FeedbackCategory.CLARITY, 5),
        ),
    )
    improvements = feedback_service.suggest_improvements(entry)
    assert [(i.type, i.priority) for i in improvements] == [
        ("overall", "high"),
        ("content", "high"),
        ("performance", "high"),
        ("performance", "medium"),
    ]
    assert "clarity" not in [i.category for i in improvements]


def test_suggest_improvements_happy_user(feedback_service):
    entry = FeedbackEntry(interaction_id="r1", rating=5, comment="great")
    assert feedback_service.suggest_improvements(entry) == []
