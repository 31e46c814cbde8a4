"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_LANGUAGES: list[dict[str, str]] = [
    {"code": "de", "name": "German"},
    {"code": "en", "name": "English"},
]

DEFAULT_TEST_TYPES: list[dict[str, str]] = [
    {"name": "reading", "description": "Reading comprehension exercises"},
    {"name": "writing", "description": "Writing prompts and evaluation"},
    {"name": "speaking", "description": "Speaking prompts with audio responses"},
]


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        if "server" in data:
            flattened["host"] = data["server"].get("host")
            flattened["port"] = data["server"].get("port")
            flattened["allowed_origins"] = data["server"].get("allowed_origins")
        if "storage" in data:
            flattened["database_url"] = data["storage"].get("database_url")
            flattened["max_audio_bytes"] = data["storage"].get("max_audio_bytes")
        if "openai" in data:
            openai = data["openai"]
            flattened["credential_service"] = openai.get("credential_service")
            flattened["generation_model"] = openai.get("generation_model")
            flattened["evaluation_model"] = openai.get("evaluation_model")
            flattened["transcription_model"] = openai.get("transcription_model")
            flattened["generation_temperature"] = openai.get("generation_temperature")
            flattened["evaluation_temperature"] = openai.get("evaluation_temperature")

        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    allowed_origins: str = Field(default="http://localhost:3000")
    env: str = Field(default="development")

    # Storage
    database_url: str | None = Field(default=None)
    upload_dir: Path | None = Field(default=None)
    max_audio_bytes: int = Field(default=10 * 1024 * 1024)

    # OpenAI (keys are per user, stored in the database)
    credential_service: str = Field(default="openai")
    generation_model: str = Field(default="gpt-4.1-mini")
    evaluation_model: str = Field(default="gpt-4.1-mini")
    transcription_model: str = Field(default="whisper-1")
    generation_temperature: float = Field(default=0.7)
    evaluation_temperature: float = Field(default=0.2)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.project_root / 'language-test.db'}"

    @property
    def uploads_dir(self) -> Path:
        d = self.upload_dir or self.project_root / "uploads"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()


def load_reference_data() -> dict[str, list[dict[str, str]]]:
    """Load seed languages and test types from reference_data.yaml."""
    path = _find_project_root() / "config" / "reference_data.yaml"
    if not path.exists():
        return {"languages": DEFAULT_LANGUAGES, "test_types": DEFAULT_TEST_TYPES}
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return {
        "languages": data.get("languages") or DEFAULT_LANGUAGES,
        "test_types": data.get("test_types") or DEFAULT_TEST_TYPES,
    }
