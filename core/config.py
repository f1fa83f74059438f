import tomli
from pydantic import BaseModel, Field

from core.types import CapabilityTier, ExportFormat, VerbosityLevel


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 7860


class LLMLocalConfig(BaseModel):
    base_url: str = "http://localhost:8080/v1"
    model: str = "gemma-3-4b-it"
    context_window_size: int = 8192


class LLMApiConfig(BaseModel):
    base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    model: str = "gemini-2.0-flash"
    api_key_env: str = "GEMINI_API_KEY"
    context_window_size: int = 1048576


class LLMConfig(BaseModel):
    backend: str = "api"
    max_tool_iterations: int = 5
    local: LLMLocalConfig = LLMLocalConfig()
    api: LLMApiConfig = LLMApiConfig()


class ToolsConfig(BaseModel):
    permissions: list[CapabilityTier] = [
        CapabilityTier.READ_ONLY,
        CapabilityTier.MODIFY_TASKS,
        CapabilityTier.TIMER_CONTROL,
    ]
    auto_approve: list[str] = []
    confirmation_timeout: int = Field(default=30, ge=1)


class StorageConfig(BaseModel):
    db_path: str = "~/.aitrace/interactions.db"


class RetentionConfig(BaseModel):
    """Capture and retention policy. Owned at runtime by the storage layer."""

    enabled: bool = True
    log_level: VerbosityLevel = VerbosityLevel.STANDARD
    retention_days: int = Field(default=30, ge=1, le=365)
    max_log_size: int = Field(default=10 * 1024 * 1024, gt=0)
    max_log_count: int = Field(default=10000, gt=0)
    include_system_prompts: bool = True
    include_tool_executions: bool = True
    include_performance_metrics: bool = True
    auto_cleanup: bool = True
    export_format: ExportFormat = ExportFormat.JSON


class LogConfig(BaseModel):
    level: str = "INFO"


class ContextConfig(BaseModel):
    max_history: int = 20


class Config(BaseModel):
    server: ServerConfig = ServerConfig()
    llm: LLMConfig = LLMConfig()
    tools: ToolsConfig = ToolsConfig()
    storage: StorageConfig = StorageConfig()
    retention: RetentionConfig = RetentionConfig()
    log: LogConfig = LogConfig()
    context: ContextConfig = ContextConfig()


def load_config(path: str = "config/default.toml") -> Config:
    """Load config from TOML file, validate with Pydantic."""
    with open(path, "rb") as f:
        data = tomli.load(f)
    return Config(**data)
