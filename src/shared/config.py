"""
Configuration management for the coaching pipeline.
Loads from config/coach.yaml and environment variables.
"""

from pathlib import Path
from typing import Optional, Dict, Any
import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

from src.shared.exceptions import ConfigurationError


class LLMConfig(BaseSettings):
    """LLM provider configuration."""
    provider: str = Field(default="openai")  # openai, anthropic
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = Field(default=None, alias="OPENAI_BASE_URL")
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    default_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    temperature: float = Field(default=0.7)
    max_tokens: int = Field(default=1200)
    # Optional USD prices used to estimate chat cost
    price_input_per_1k: Optional[float] = Field(default=None, alias="OPENAI_PRICE_INPUT_PER_1K")
    price_output_per_1k: Optional[float] = Field(default=None, alias="OPENAI_PRICE_OUTPUT_PER_1K")

    model_config = SettingsConfigDict(env_prefix="LLM_", extra="ignore", populate_by_name=True)


class ApiConfig(BaseSettings):
    """API server configuration."""
    host: str = Field(default="0.0.0.0", alias="API_HOST")
    port: int = Field(default=8000, alias="API_PORT")
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    model_config = SettingsConfigDict(env_prefix="API_", extra="ignore", populate_by_name=True)


class PipelineConfig(BaseSettings):
    """Batch pipeline inputs and outputs."""
    students_json_path: Path = Field(default=Path("students.json"))
    preferences_path: Optional[Path] = Field(default=None)
    history_db_path: Path = Field(default=Path("data/history.sqlite"))
    outbox_dir: Optional[Path] = Field(default=None)
    email_from: str = Field(default="Edu Assistant <noreply@local>")
    teacher_email: str = Field(default="teacher@example.com")
    schedule_interval_minutes: int = Field(default=30)
    # When true, a run whose start cannot be recorded is aborted
    require_run_record: bool = Field(default=False)

    model_config = SettingsConfigDict(env_prefix="PIPELINE_", extra="ignore")

    @field_validator("schedule_interval_minutes")
    @classmethod
    def _positive_interval(cls, value: int) -> int:
        if value <= 0:
            return 30
        return value


class MemoryConfig(BaseSettings):
    """Longitudinal memory configuration."""
    memory_dir: Path = Field(default=Path("memory"))
    history_limit: int = Field(default=5)

    model_config = SettingsConfigDict(env_prefix="MEMORY_", extra="ignore")

    @field_validator("history_limit")
    @classmethod
    def _non_negative_limit(cls, value: int) -> int:
        return max(value, 0)


class CoachSettings(BaseSettings):
    """Main pipeline configuration."""
    env: str = Field(default="dev", alias="COACH_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, alias="LOG_FILE")

    # Sub-configurations
    api: ApiConfig = Field(default_factory=ApiConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow"
    )

    @classmethod
    def load_from_yaml(cls, config_path: Optional[Path] = None) -> "CoachSettings":
        """Load settings from YAML file and merge with environment variables."""
        if config_path is None:
            config_path = Path("config/coach.yaml")

        config_dict: Dict[str, Any] = {}

        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    yaml_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
            if not isinstance(yaml_data, dict):
                raise ConfigurationError(f"{config_path} must contain a mapping")
            config_dict = yaml_data.get("coach", {}) or {}

        return cls(**config_dict)


# Global settings instance
_settings: Optional[CoachSettings] = None


def get_settings() -> CoachSettings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = CoachSettings.load_from_yaml()
    return _settings


# Alias for convenience
settings = get_settings()
