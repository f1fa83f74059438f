from collections import Counter
from dataclasses import asdict, dataclass, field

from analytics.enrichment import EnrichedRecord, RecordEnricher, parse_legacy_feedback, strip_legacy_feedback
from analytics.heuristics import KeywordStressClassifier
from core.log import get_logger
from memory.store import InteractionStore
from memory.types import FeedbackEntry, LogFilter

logger = get_logger(__name__)

TOP_TOOLS = 10


@dataclass
class ToolUsage:
    tool_name: str
    count: int


@dataclass
class EmotionalTrends:
    average_stress_level: float = 0.0
    stress_progression: list[int] = field(default_factory=list)
    support_needs_frequency: dict[str, int] = field(default_factory=dict)


@dataclass
class PerformanceTrends:
    average_response_time: float = 0.0
    response_time_progression: list[float] = field(default_factory=list)
    error_rate: float = 0.0
    throughput: int = 0


@dataclass
class Analytics:
    total_interactions: int = 0
    average_response_time: float = 0.0
    success_rate: float = 0.0
    most_used_tools: list[ToolUsage] = field(default_factory=list)
    emotional_trends: EmotionalTrends = field(default_factory=EmotionalTrends)
    performance_trends: PerformanceTrends = field(default_factory=PerformanceTrends)
    satisfaction_score: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SearchQuery:
    text: str | None = None
    intent: str | None = None
    tools_used: list[str] = field(default_factory=list)
    max_response_time_ms: float | None = None
    emotional_state: str | None = None
    limit: int = 50


def satisfaction_score(error_rate: float, avg_response_ms: float) -> float:
    """0-10: up to five points for reliability and five for speed."""
    return min(10.0, 5 * (1 - error_rate) + max(0.0, 5 - avg_response_ms / 1000))


class AnalyticsService:
    """Read-only queries over captured interactions.

    Storage errors propagate to the caller, this sits behind UI-level
    callers rather than the conversational flow.
    """

    def __init__(
        self,
        store: InteractionStore,
        enricher: RecordEnricher | None = None,
        stress_classifier: KeywordStressClassifier | None = None,
    ):
        self.store = store
        self.enricher = enricher or RecordEnricher(store)
        self.stress = stress_classifier or KeywordStressClassifier()

    async def get_records(self, log_filter: LogFilter | None = None) -> list[EnrichedRecord]:
        records = await self.store.list_records(log_filter)
        return await self.enricher.enrich_all(records)

    async def get_record(self, record_id: str) -> EnrichedRecord | None:
        record = await self.store.get(record_id)
        if record is None:
            return None
        return await self.enricher.enrich(record)

    async def get_analytics(self, log_filter: LogFilter | None = None) -> Analytics:
        enriched = await self.get_records(log_filter)
        if not enriched:
            return Analytics()

        records = [e.record for e in enriched]
        total = len(records)
        latencies = [r.response_time_ms for r in records]
        avg_latency = sum(latencies) / total
        error_rate = sum(1 for r in records if r.error) / total

        tool_counts = Counter(name for e in enriched for name in e.tool_names)
        most_used = [ToolUsage(name, count) for name, count in tool_counts.most_common(TOP_TOOLS)]

        stress_levels = [self.stress.level(r.user_message) for r in records]
        support = Counter(need for r in records for need in self.stress.support_needs(r.user_message))

        return Analytics(
            total_interactions=total,
            average_response_time=avg_latency,
            success_rate=1 - error_rate,
            most_used_tools=most_used,
            emotional_trends=EmotionalTrends(
                average_stress_level=sum(stress_levels) / total,
                stress_progression=stress_levels,
                support_needs_frequency={
                    need: support.get(need, 0) for need in ("guidance", "motivation", "task_prioritization")
                },
            ),
            performance_trends=PerformanceTrends(
                average_response_time=avg_latency,
                response_time_progression=latencies,
                error_rate=error_rate,
                throughput=total,
            ),
            satisfaction_score=satisfaction_score(error_rate, avg_latency),
        )

    async def search(self, query: SearchQuery) -> list[EnrichedRecord]:
        """Free text goes to the store, everything else filters the enriched results. All filters AND."""
        results = await self.get_records(LogFilter(search_text=query.text, limit=query.limit))

        if query.intent:
            results = [e for e in results if e.intent == query.intent]
        if query.tools_used:
            wanted = set(query.tools_used)
            results = [e for e in results if wanted.intersection(e.tool_names)]
        if query.max_response_time_ms is not None:
            results = [e for e in results if e.record.response_time_ms <= query.max_response_time_ms]
        if query.emotional_state:
            state = query.emotional_state.lower()
            results = [
                e
                for e in results
                if state in e.stress_indicators or state in e.record.user_message.lower()
            ]
        return results

    async def submit_feedback(self, entry: FeedbackEntry) -> None:
        if await self.store.get(entry.interaction_id) is None:
            raise KeyError(entry.interaction_id)
        await self.store.save_feedback(entry)

    async def migrate_legacy_feedback(self) -> int:
        """Move feedback smuggled into reasoning text into the feedback table."""
        migrated = 0
        for record in await self.store.list_records(LogFilter(oldest_first=True)):
            entry = parse_legacy_feedback(record.id, record.reasoning)
            if entry is None or not record.reasoning:
                continue
            if await self.store.get_feedback(record.id) is None:
                await self.store.save_feedback(entry)
            await self.store.update(record.id, {"reasoning": strip_legacy_feedback(record.reasoning) or None})
            migrated += 1
        if migrated:
            logger.info("Migrated %d legacy feedback entries", migrated)
        return migrated
