"""Configuration management for the Library Lending API.

Settings are read from ``LIBRARY_API_*`` environment variables (or a ``.env``
file) and validated with Pydantic v2. Lending and fine policy values live here
so that operators can tune loan periods and penalty rates without a code
change; repositories receive them as plain policy objects.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.borrow import LendingPolicy
from .models.fine import FinePolicy


class ServerConfig(BaseSettings):
    """Library API configuration.

    Groups:
    - Server metadata and HTTP binding
    - Database location
    - Lending policy (loan periods, extensions)
    - Fine policy (overdue rate, damage and loss fractions)
    - Pagination limits
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_API_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Server Metadata ===

    server_name: str = Field(
        default="library-api",
        description="Service name reported by the health endpoint",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Service version",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    # === Database Configuration ===

    database_path: Path = Field(
        default=Path("data/library.db"),
        description="SQLite database file path",
    )

    database_url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides database_path when set",
        repr=False,
    )

    # === HTTP Configuration ===

    http_host: str = Field(
        default="127.0.0.1",
        description="Host the HTTP server binds to",
    )

    http_port: int = Field(
        default=9999,
        description="Port the HTTP server binds to",
        ge=1024,
        le=65535,
    )

    # === Development Configuration ===

    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    # === Lending Policy ===

    on_site_loan_days: int = Field(
        default=1,
        description="Loan period for books read on site",
        ge=1,
    )

    take_home_loan_days: int = Field(
        default=14,
        description="Loan period for books taken home",
        ge=1,
    )

    default_extension_days: int = Field(
        default=7,
        description="Days added to a due date when staff do not specify",
        ge=1,
    )

    max_extension_days: int = Field(
        default=60,
        description="Largest single extension staff may grant",
        ge=1,
    )

    # === Fine Policy ===

    overdue_fine_per_day: float = Field(
        default=5000,
        description="Fine charged per started day of late return",
        ge=0,
    )

    damage_fine_ratio: float = Field(
        default=0.3,
        description="Fraction of the book price charged for a damaged copy",
        ge=0,
        le=1,
    )

    lost_fine_ratio: float = Field(
        default=1.0,
        description="Fraction of the book price charged for a lost copy",
        ge=0,
    )

    # === Pagination ===

    default_page_size: int = Field(default=10, ge=1, le=100)
    max_page_size: int = Field(default=100, ge=1, le=1000)

    # === Validation Methods ===

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path and make sure its directory exists."""
        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")

        return abs_path

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        if len(v) < 3:
            raise ValueError("Server name must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Server name must not exceed 50 characters")
        return v

    @field_validator("http_port")
    @classmethod
    def validate_http_port(cls, v: int) -> int:
        """Reject ports commonly taken by other services."""
        reserved_ports = {3306, 5432, 6379, 27017}
        if v in reserved_ports:
            raise ValueError(f"Port {v} is commonly reserved, choose another")
        return v

    # === Computed Properties ===

    @property
    def is_development(self) -> bool:
        return self.debug or self.log_level == "DEBUG"

    @property
    def lending_policy(self) -> LendingPolicy:
        return LendingPolicy(
            on_site_loan_days=self.on_site_loan_days,
            take_home_loan_days=self.take_home_loan_days,
            default_extension_days=self.default_extension_days,
            max_extension_days=self.max_extension_days,
        )

    @property
    def fine_policy(self) -> FinePolicy:
        return FinePolicy(
            overdue_fine_per_day=self.overdue_fine_per_day,
            damage_fine_ratio=self.damage_fine_ratio,
            lost_fine_ratio=self.lost_fine_ratio,
        )

    def get_database_url(self) -> str:
        """Get the SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.database_path}"


# === Global Configuration Instance ===


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Get or create the process-wide configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = ServerConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
