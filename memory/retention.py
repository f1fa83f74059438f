import asyncio
from dataclasses import asdict, dataclass
from datetime import timedelta

from core.config import RetentionConfig
from core.log import get_logger
from memory.store import InteractionStore, StorageError
from memory.types import InteractionRecord, LogFilter, utcnow

logger = get_logger(__name__)

CLEANUP_INTERVAL_S = 24 * 60 * 60
CRITICAL_FACTOR = 1.2
BATCH_SIZE = 100


@dataclass
class CleanupReport:
    total_records: int = 0
    deleted_records: int = 0
    freed_space: int = 0
    complete: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class StorageWarning:
    type: str  # "age" | "count" | "size"
    severity: str  # "warning" | "critical"
    message: str
    threshold: float
    current: float

    def to_dict(self) -> dict:
        return asdict(self)


def record_size(record: InteractionRecord) -> int:
    """Stored text size, measured the same way as the store's stats."""
    return sum(
        len(value or "")
        for value in (
            record.user_message,
            record.ai_response,
            record.context,
            record.system_prompt,
            record.reasoning,
            record.actions,
            record.suggestions,
        )
    )


class CleanupInProgressError(RuntimeError):
    pass


class RetentionManager:
    """Applies the retention policy: age, then count, then size."""

    def __init__(self, store: InteractionStore, default_config: RetentionConfig | None = None):
        self.store = store
        self.default_config = default_config or RetentionConfig()
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def perform_cleanup(self) -> CleanupReport:
        if self._running:
            raise CleanupInProgressError("Cleanup is already running")
        self._running = True
        try:
            config = await self._config()
            stats = await self.store.stats()
            report = CleanupReport(total_records=stats.count)

            for step in (self._by_age, self._by_count, self._by_size):
                deleted, freed = await step(config)
                report.deleted_records += deleted
                report.freed_space += freed

            report.complete = True
            logger.info(
                "Retention cleanup removed %d records (%d bytes)", report.deleted_records, report.freed_space
            )
            return report
        finally:
            self._running = False

    async def storage_warnings(self) -> list[StorageWarning]:
        config = await self._config()
        stats = await self.store.stats()
        warnings: list[StorageWarning] = []

        if stats.oldest is not None:
            age_days = (utcnow() - stats.oldest).days
            warnings.extend(
                _check("age", age_days, config.retention_days, f"Oldest record is {age_days} days old")
            )
        warnings.extend(_check("count", stats.count, config.max_log_count, f"{stats.count} records stored"))
        warnings.extend(
            _check("size", stats.total_size, config.max_log_size, f"{stats.total_size} bytes stored")
        )
        return warnings

    async def start(self, interval_s: float = CLEANUP_INTERVAL_S) -> bool:
        """Schedule periodic cleanup when the policy asks for it."""
        config = await self._config()
        if not config.auto_cleanup:
            return False
        await self.stop()
        self._task = asyncio.create_task(self._loop(interval_s))
        return True

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _loop(self, interval_s: float) -> None:
        while True:
            try:
                await self.perform_cleanup()
            except (StorageError, CleanupInProgressError) as e:
                logger.error("Automatic cleanup failed: %s", e)
            await asyncio.sleep(interval_s)

    async def _config(self) -> RetentionConfig:
        try:
            config = await self.store.get_retention_config()
        except StorageError as e:
            logger.warning("Failed to load retention config, using defaults: %s", e)
            return self.default_config
        return config or self.default_config

    async def _by_age(self, config: RetentionConfig) -> tuple[int, int]:
        cutoff = utcnow() - timedelta(days=config.retention_days)
        old = await self.store.list_records(LogFilter(end_date=cutoff))
        freed = sum(record_size(r) for r in old)
        deleted = await self.store.cleanup_older_than(cutoff)
        return deleted, freed

    async def _by_count(self, config: RetentionConfig) -> tuple[int, int]:
        stats = await self.store.stats()
        excess = stats.count - config.max_log_count
        if excess <= 0:
            return 0, 0
        oldest = await self.store.list_records(LogFilter(limit=excess, oldest_first=True))
        return await self._delete(oldest)

    async def _by_size(self, config: RetentionConfig) -> tuple[int, int]:
        stats = await self.store.stats()
        excess = stats.total_size - config.max_log_size
        deleted = freed = 0
        while freed < excess:
            batch = await self.store.list_records(LogFilter(limit=BATCH_SIZE, oldest_first=True))
            if not batch:
                break
            for record in batch:
                await self.store.delete(record.id)
                deleted += 1
                freed += record_size(record)
                if freed >= excess:
                    break
        return deleted, freed

    async def _delete(self, records: list[InteractionRecord]) -> tuple[int, int]:
        deleted = freed = 0
        for record in records:
            await self.store.delete(record.id)
            deleted += 1
            freed += record_size(record)
        return deleted, freed


def _check(kind: str, current: float, threshold: float, detail: str) -> list[StorageWarning]:
    if current > threshold * CRITICAL_FACTOR:
        severity = "critical"
    elif current > threshold:
        severity = "warning"
    else:
        return []
    return [
        StorageWarning(
            type=kind,
            severity=severity,
            message=f"{detail}, exceeding the retention limit of {threshold}",
            threshold=threshold,
            current=current,
        )
    ]
