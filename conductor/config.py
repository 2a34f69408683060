"""Conductor configuration management using pydantic-settings."""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from project root so ANTHROPIC_API_KEY is available
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

DEFAULT_CONFIG_PATH = Path.home() / ".config/conductor/config.toml"


class GeneralSettings(BaseSettings):
    data_dir: Path = Field(default=Path.home() / ".local/share/conductor")
    db_url: str = Field(default=f"sqlite+aiosqlite:///{Path.home() / '.local/share/conductor/conductor.db'}")
    log_level: str = "INFO"


class AnthropicSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ANTHROPIC_")
    api_key: str = ""
    chat_model: str = "claude-haiku-4-5-20251001"
    # Background agent runs always use this model, never the chat model
    agent_model: str = "claude-opus-4-1-20250805"
    max_tokens: int = 4096
    input_cost_per_mtok: float = 15.0
    output_cost_per_mtok: float = 75.0


class AgentSettings(BaseSettings):
    """Settings for the background agent scheduler and executor."""

    model_config = SettingsConfigDict(env_prefix="CONDUCTOR_AGENT_")
    poll_interval_seconds: float = 60.0
    initial_delay_seconds: float = 10.0
    daily_budget_usd: Optional[float] = None
    safe_action_types: list[str] = Field(
        default_factory=lambda: ["createTodoTask", "createGoal", "completeGoal"]
    )
    reminders_limit: int = 10
    emails_limit: int = 10
    notes_limit: int = 5


class MCPSettings(BaseSettings):
    """Settings for the local tool-call server."""

    model_config = SettingsConfigDict(env_prefix="CONDUCTOR_MCP_")
    host: str = "127.0.0.1"
    port: int = 0  # 0 = let the OS pick
    path: str = "/mcp"
    token_ttl_hours: float = 12.0
    max_request_body_bytes: int = 256 * 1024
    config_path: Path = Field(default=Path.home() / ".local/share/conductor/mcp-config.json")
    calendar_read_enabled: bool = True
    reminders_read_enabled: bool = True
    planning_enabled: bool = True
    email_integration_enabled: bool = False


class PlanningSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CONDUCTOR_PLANNING_")
    min_lead_minutes: int = 15
    rounding_minutes: int = 5
    day_start_hour: int = 9
    block_gap_minutes: int = 15
    conflict_gap_minutes: int = 10
    min_block_minutes: int = 30
    max_block_minutes: int = 180
    max_tasks_per_block: int = 3


class Settings(BaseSettings):
    """Top-level settings assembled from subsections."""

    general: GeneralSettings = Field(default_factory=GeneralSettings)
    anthropic: AnthropicSettings = Field(default_factory=AnthropicSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    mcp: MCPSettings = Field(default_factory=MCPSettings)
    planning: PlanningSettings = Field(default_factory=PlanningSettings)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings from TOML config file, falling back to defaults."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        if config_path.exists():
            import toml

            data = toml.load(config_path)
            return cls(
                general=GeneralSettings(**data.get("general", {})),
                anthropic=AnthropicSettings(**data.get("anthropic", {})),
                agent=AgentSettings(**data.get("agent", {})),
                mcp=MCPSettings(**data.get("mcp", {})),
                planning=PlanningSettings(**data.get("planning", {})),
            )

        return cls()


# Module-level singleton, only read by the CLI entry points
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
