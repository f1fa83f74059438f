import uuid
from datetime import timedelta

import pytest

from core.config import Config, RetentionConfig, load_config
from core.types import BackendDescriptor, Classification
from memory.capture import CapturePipeline
from memory.sqlite_store import SQLiteInteractionStore
from memory.types import InteractionRecord, utcnow
from privacy.filter import PrivacyFilter


@pytest.fixture
def config() -> Config:
    """Load default config for tests."""
    return load_config()


@pytest.fixture
def temp_config(tmp_path):
    """Create a temp config TOML for isolated tests."""
    toml_content = f"""
[server]
host = "127.0.0.1"
port = 7860
[llm]
backend = "local"
[llm.local]
base_url = "http://localhost:8080/v1"
model = "test-model"
context_window_size = 4096
[tools]
permissions = ["read_only"]
auto_approve = ["create_task"]
confirmation_timeout = 5
[storage]
db_path = "{tmp_path / 'aitrace.db'}"
[retention]
log_level = "detailed"
retention_days = 7
max_log_count = 50
[log]
level = "DEBUG"
[context]
max_history = 5
"""
    config_path = tmp_path / "test.toml"
    config_path.write_text(toml_content)
    return load_config(str(config_path))


@pytest.fixture
def store(tmp_path):
    s = SQLiteInteractionStore(str(tmp_path / "test_interactions.db"))
    yield s
    s.close()


@pytest.fixture
def privacy() -> PrivacyFilter:
    return PrivacyFilter()


@pytest.fixture
def pipeline(store, privacy) -> CapturePipeline:
    return CapturePipeline(store, privacy, default_config=RetentionConfig())


def make_record(
    user_message: str = "hello",
    ai_response: str = "Hi there!",
    days_ago: float = 0,
    backend: str = "test-model",
    **overrides,
) -> InteractionRecord:
    """Build a stored-shape record without going through capture."""
    timestamp = utcnow() - timedelta(days=days_ago)
    fields = dict(
        id=str(uuid.uuid4()),
        timestamp=timestamp,
        session_id="session-test",
        backend=BackendDescriptor(name=backend, provider="local", context_window_size=4096),
        user_message=user_message,
        ai_response=ai_response,
        response_time_ms=100.0,
        classification=Classification.PUBLIC,
        created_at=timestamp,
        updated_at=timestamp,
    )
    fields.update(overrides)
    return InteractionRecord(**fields)
