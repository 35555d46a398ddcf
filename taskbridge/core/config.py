"""Configuration management using Pydantic Settings."""

import logging
from pathlib import Path
from typing import ClassVar

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

MAX_POLL_INTERVAL = 60
DEFAULT_POLL_INTERVAL = 5

CONFLICT_POLICIES = ("prefer_source", "prefer_mirror", "last_write_wins")


def clamp_poll_interval(value: int | None, minimum: int) -> int:
    """Clamp a poll interval (minutes) into ``[minimum, MAX_POLL_INTERVAL]``."""
    if value is None:
        return DEFAULT_POLL_INTERVAL
    value = int(value)
    if value < minimum:
        logger.warning(f"Poll interval {value} is below the minimum of {minimum} minutes, using {minimum}")
        return minimum
    if value > MAX_POLL_INTERVAL:
        logger.warning(
            f"Poll interval {value} exceeds the maximum of {MAX_POLL_INTERVAL} minutes, using {MAX_POLL_INTERVAL}"
        )
        return MAX_POLL_INTERVAL
    return value


class SyncMapping(BaseSettings):
    """Mapping between one source list and one Todoist project.

    Attributes:
        source_list_id: Google list ID, Microsoft list ID, or "all" for Alexa
        list_name: Microsoft To-Do list display name (alternative to source_list_id)
        todoist_project_id: Todoist project ID, or "inbox" for the Inbox project
        include_completed: Also mirror items that are already completed
        delete_after_sync: Remove the source item once it exists in Todoist
        tags: Labels applied to every mirrored task
    """

    source_list_id: str | None = None
    list_name: str | None = None
    todoist_project_id: str = "inbox"
    include_completed: bool = False
    delete_after_sync: bool = False
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: list[str] | str | None) -> list[str]:
        """Accept a comma separated string as well as a list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [tag.strip() for tag in v.split(",") if tag.strip()]
        return [str(tag) for tag in v]

    @property
    def scope_label(self) -> str:
        return self.list_name or self.source_list_id or "all"


class TodoistConfig(BaseSettings):
    """Configuration for the Todoist mirror."""

    model_config = SettingsConfigDict(env_prefix="TODOIST_")

    api_token: str | None = None
    base_url: str = "https://api.todoist.com/api/v1"

    @field_validator("base_url", mode="before")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate Todoist API URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Todoist base URL must start with http:// or https://")
        return v.rstrip("/")

    def get_api_token(self) -> str | None:
        """
        Get the Todoist API token from keyring or config.

        Priority:
        1. System keyring
        2. Config/environment variable (fallback)

        Returns:
            Token if found, None otherwise
        """
        try:
            from taskbridge.utils.credentials import CredentialStore

            token = CredentialStore().get_todoist_token()
            if token:
                logger.debug("Using Todoist token from system keyring")
                return token
        except Exception as e:
            logger.warning(f"Failed to retrieve Todoist token from keyring: {e}")

        if self.api_token:
            logger.debug("Using Todoist token from config/environment")
            return self.api_token

        return None


class SourceConfig(BaseSettings):
    """Settings shared by every source."""

    MIN_POLL_INTERVAL: ClassVar[int] = 1

    enabled: bool = False
    poll_interval_minutes: int = DEFAULT_POLL_INTERVAL
    lists: list[SyncMapping] = Field(default_factory=list)

    @model_validator(mode="after")
    def clamp_interval(self) -> "SourceConfig":
        self.poll_interval_minutes = clamp_poll_interval(self.poll_interval_minutes, self.MIN_POLL_INTERVAL)
        return self


class GoogleConfig(SourceConfig):
    """Configuration for Google Tasks (one-way)."""

    token_path: Path = Field(default_factory=lambda: Path.home() / ".taskbridge" / "google-token.json")
    token_uri: str = "https://oauth2.googleapis.com/token"

    @field_validator("token_path", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        """Expand user home directory in paths."""
        return Path(v).expanduser().resolve()


class ShoppingListConfig(BaseSettings):
    """Configuration for the Alexa shopping list (one-way)."""

    enabled: bool = False
    todoist_project_id: str | None = None
    include_completed: bool = False
    delete_after_sync: bool = False
    tags: list[str] = Field(default_factory=list)

    def as_mapping(self) -> SyncMapping:
        return SyncMapping(
            source_list_id="shopping",
            todoist_project_id=self.todoist_project_id or "inbox",
            include_completed=self.include_completed,
            delete_after_sync=self.delete_after_sync,
            tags=self.tags,
        )


class AlexaConfig(SourceConfig):
    """Configuration for Alexa reminders and shopping list (one-way)."""

    MIN_POLL_INTERVAL: ClassVar[int] = 2

    cookie_path: Path = Field(default_factory=lambda: Path.home() / ".taskbridge" / "alexa-cookie.json")
    amazon_page: str = "amazon.com"
    fail_silently: bool = True
    max_retries: int = Field(default=3, ge=1, le=10)
    sync_shopping_list: ShoppingListConfig = Field(default_factory=ShoppingListConfig)

    @field_validator("cookie_path", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        """Expand user home directory in paths."""
        return Path(v).expanduser().resolve()


class MicrosoftConfig(SourceConfig):
    """Configuration for Microsoft To-Do (bi-directional)."""

    client_id: str | None = None
    tenant_id: str = "common"
    token_path: Path = Field(default_factory=lambda: Path.home() / ".taskbridge" / "microsoft-token.json")
    exclude_others_assignments: bool = True
    conflict_policy: str = "last_write_wins"

    @field_validator("token_path", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        """Expand user home directory in paths."""
        return Path(v).expanduser().resolve()

    @field_validator("conflict_policy", mode="before")
    @classmethod
    def validate_conflict_policy(cls, v: str) -> str:
        """Validate conflict resolution policy."""
        v = v.lower()
        if v not in CONFLICT_POLICIES:
            raise ValueError(f"Conflict policy must be one of: {', '.join(CONFLICT_POLICIES)}")
        return v

    @property
    def token_uri(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token"


class SyncConfig(BaseSettings):
    """Settings that apply to every sync pass."""

    sync_completed_once: bool = True
    retry_attempts: int = Field(default=3, ge=1)
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 30.0
    shutdown_timeout_seconds: float = 10.0
    health_log_interval_minutes: int = 5


class ApiConfig(BaseSettings):
    """Settings for the HTTP health/status API."""

    host: str = "127.0.0.1"
    port: int = 8787


class GeneralConfig(BaseSettings):
    """General application configuration."""

    log_level: str = "INFO"
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".taskbridge")
    log_file_name: str = "taskbridge.log"
    log_file_max_bytes: int = 5 * 1024 * 1024
    log_file_backup_count: int = 3
    log_overrides: dict[str, str] = Field(default_factory=dict)
    database_path: Path | None = None
    # Runtime metadata - not serialized to config file
    config_file: Path | None = Field(default=None, exclude=True)

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v == "WARN":
            v = "WARNING"
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_data_dir(cls, v: str | Path) -> Path:
        """Expand user home directory in data directory path."""
        return Path(v).expanduser().resolve()

    @field_validator("database_path", mode="before")
    @classmethod
    def expand_database_path(cls, v: str | Path | None) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser().resolve()


class AppConfig(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TASKBRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    todoist: TodoistConfig = Field(default_factory=TodoistConfig)
    google: GoogleConfig = Field(default_factory=GoogleConfig)
    alexa: AlexaConfig = Field(default_factory=AlexaConfig)
    microsoft: MicrosoftConfig = Field(default_factory=MicrosoftConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AppConfig":
        """Load configuration from a TOML file."""
        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            return cls()

        import tomllib

        with open(config_path, "rb") as f:
            config_dict = tomllib.load(f)

        return cls(**config_dict)

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to a TOML file."""
        import tomli_w

        config_path.parent.mkdir(parents=True, exist_ok=True)

        # Convert to dict, handling Path objects and excluding None values
        config_dict = self.model_dump(mode="json", exclude_none=True)

        with open(config_path, "wb") as f:
            tomli_w.dump(config_dict, f)

        logger.info(f"Configuration saved to {config_path}")

    def ensure_data_dir(self) -> None:
        """Ensure data directory exists."""
        self.general.data_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Data directory: {self.general.data_dir}")

    @property
    def db_path(self) -> Path:
        """Path to the snapshot database shared by all sources."""
        return self.general.database_path or self.general.data_dir / "taskbridge.db"

    @property
    def default_config_path(self) -> Path:
        """Get default configuration file path."""
        return self.general.data_dir / "config.toml"


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from file or create default."""
    if config_path is None:
        config = AppConfig()
        config_path = config.default_config_path

    if config_path.exists():
        config = AppConfig.load_from_file(config_path)
    else:
        config = AppConfig()

    config.general.config_file = config_path
    config.ensure_data_dir()
    return config
