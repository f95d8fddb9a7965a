"""Application settings loaded from environment variables and .env files."""

from functools import lru_cache
from urllib.parse import quote_plus

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Hey future me, the defaults here ARE the original connection string:
#   Data Source=(local);Initial Catalog=EfCoreMsSqlData3;Integrated Security=True;
#   Connect Timeout=60;Encrypt=False;TrustServerCertificate=False;
#   ApplicationIntent=ReadWrite;MultiSubnetFailover=False
# So running `eventsdb` with no env vars talks to a local SQL Server. For dev/tests set
# EVENTSDB_DATABASE__URL=sqlite+aiosqlite:///./eventsdb.db and everything else is ignored.
class DatabaseSettings(BaseModel):
    """Database connection, logging and retry configuration."""

    url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides the SQL Server parts below",
    )

    # SQL Server connection-string parts
    host: str = Field(default="(local)", description="Data Source")
    catalog: str = Field(default="EfCoreMsSqlData3", description="Initial Catalog")
    integrated_security: bool = Field(default=True)
    username: str | None = Field(default=None)
    password: str | None = Field(default=None)
    connect_timeout: int = Field(default=60, ge=0, description="Seconds")
    encrypt: bool = Field(default=False)
    trust_server_certificate: bool = Field(default=False)
    application_intent: str = Field(default="ReadWrite")
    multi_subnet_failover: bool = Field(default=False)
    odbc_driver: str = Field(default="ODBC Driver 18 for SQL Server")

    # Engine behaviour
    echo: bool = Field(default=False, description="Log every SQL statement")
    sensitive_data_logging: bool = Field(
        default=True,
        description="Show bound parameter values in logs and error messages",
    )
    pool_pre_ping: bool = Field(default=True)
    create_schema: bool = Field(
        default=False, description="Create tables on startup (SQLite dev databases)"
    )

    # Retry on transient failures
    retry_on_failure: bool = Field(default=True)
    max_retry_count: int = Field(default=6, ge=0)
    max_retry_delay: float = Field(default=30.0, gt=0)
    initial_retry_delay: float = Field(default=0.5, ge=0)
    retry_backoff_factor: float = Field(default=2.0, ge=1.0)
    extra_transient_error_numbers: list[int] = Field(default_factory=list)

    @field_validator("application_intent")
    @classmethod
    def validate_application_intent(cls, v: str) -> str:
        """Only the two intents SQL Server understands are accepted."""
        allowed = {"readwrite": "ReadWrite", "readonly": "ReadOnly"}
        try:
            return allowed[v.lower()]
        except KeyError as e:
            raise ValueError(
                f"application_intent must be ReadWrite or ReadOnly, got {v!r}"
            ) from e

    @property
    def is_sqlite(self) -> bool:
        """True when the resolved URL points at SQLite."""
        return self.resolved_url.startswith("sqlite")

    def odbc_connection_string(self) -> str:
        """Build the ODBC connection string from the individual parts."""
        parts = [
            f"DRIVER={{{self.odbc_driver}}}",
            f"SERVER={self.host}",
            f"DATABASE={self.catalog}",
        ]
        if self.integrated_security:
            parts.append("Trusted_Connection=yes")
        else:
            parts.append(f"UID={self.username or ''}")
            parts.append(f"PWD={self.password or ''}")
        parts.extend(
            [
                f"Connection Timeout={self.connect_timeout}",
                f"Encrypt={'yes' if self.encrypt else 'no'}",
                "TrustServerCertificate="
                + ("yes" if self.trust_server_certificate else "no"),
                f"ApplicationIntent={self.application_intent}",
                f"MultiSubnetFailover={'yes' if self.multi_subnet_failover else 'no'}",
            ]
        )
        return ";".join(parts)

    @property
    def resolved_url(self) -> str:
        """SQLAlchemy URL, assembled from the SQL Server parts when url is unset."""
        if self.url:
            return self.url
        return "mssql+aioodbc:///?odbc_connect=" + quote_plus(
            self.odbc_connection_string()
        )


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO")
    json_format: bool = Field(default=False)
    log_sql: bool = Field(
        default=True, description="Write every generated SQL command to the log"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level


class Settings(BaseSettings):
    """Top-level settings for eventsdb."""

    model_config = SettingsConfigDict(
        env_prefix="EVENTSDB_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="eventsdb")
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Yo, cached so the CLI reads env/.env once. Tests and library callers should build their own
# Settings(...) and pass it to Database explicitly - nothing in the persistence layer calls this.
@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
