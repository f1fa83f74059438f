from dataclasses import dataclass

from analytics.export import LogExporter
from analytics.feedback import FeedbackAnalysisService
from analytics.service import AnalyticsService
from core.config import Config
from core.log import get_logger
from memory.capture import CapturePipeline, StatusCallback
from memory.retention import RetentionManager
from memory.sqlite_store import SQLiteInteractionStore
from privacy.filter import PrivacyFilter
from tools.engine import CapabilityGrant, ToolExecutionEngine

logger = get_logger(__name__)


@dataclass
class Services:
    """One instance of each component, wired together for a process."""

    config: Config
    store: SQLiteInteractionStore
    privacy: PrivacyFilter
    pipeline: CapturePipeline
    engine: ToolExecutionEngine
    analytics: AnalyticsService
    feedback: FeedbackAnalysisService
    exporter: LogExporter
    retention: RetentionManager

    def close(self) -> None:
        self.store.close()


async def build_services(
    config: Config,
    status_callback: StatusCallback | None = None,
    db_path: str | None = None,
) -> Services:
    store = SQLiteInteractionStore(db_path or config.storage.db_path)
    if await store.get_retention_config() is None:
        # First start: seed the live policy from the config file.
        await store.update_retention_config(config.retention.model_dump())
        logger.info("Seeded retention config from %s defaults", config.storage.db_path)

    privacy = PrivacyFilter()
    analytics = AnalyticsService(store)
    return Services(
        config=config,
        store=store,
        privacy=privacy,
        pipeline=CapturePipeline(store, privacy, status_callback, default_config=config.retention),
        engine=ToolExecutionEngine(CapabilityGrant.from_config(config.tools)),
        analytics=analytics,
        feedback=FeedbackAnalysisService(analytics),
        exporter=LogExporter(store, privacy),
        retention=RetentionManager(store, default_config=config.retention),
    )
