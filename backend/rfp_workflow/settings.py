from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # Runtime
    environment: str = Field(default="development", validation_alias="NODE_ENV")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # AWS / data
    aws_region: str = Field(default="us-east-1", validation_alias="AWS_REGION")
    ddb_table_name: str | None = Field(default=None, validation_alias="DDB_TABLE_NAME")
    # Optional: point at DynamoDB Local (e.g. http://localhost:8000).
    ddb_endpoint_url: str | None = Field(default=None, validation_alias="DDB_ENDPOINT_URL")

    # Opaque cursor tokens (encrypted LastEvaluatedKey).
    cursor_token_secret: str | None = Field(default=None, validation_alias="CURSOR_TOKEN_SECRET")

    # Firm-wide outcome feed: items fetched per GSI page.
    rfp_outcomes_page_size: int = Field(default=200, validation_alias="RFP_OUTCOMES_PAGE_SIZE")

    # ---- helpers / derived flags ----
    @property
    def normalized_environment(self) -> str:
        v = (self.environment or "").strip().lower()
        if v in ("prod", "production"):
            return "production"
        if v in ("stage", "staging"):
            return "staging"
        if v in ("dev", "development"):
            return "development"
        return v or "development"

    @property
    def is_production(self) -> bool:
        return self.normalized_environment == "production"

    def require_in_production(self) -> None:
        """
        Enforce required settings in production.

        Development/staging may run with partial config for local work.
        """
        if not self.is_production:
            return

        missing: list[str] = []
        if not self.ddb_table_name:
            missing.append("DDB_TABLE_NAME")
        # Cursor encryption must never fall back to the insecure default in prod.
        if not self.cursor_token_secret:
            missing.append("CURSOR_TOKEN_SECRET")

        if missing:
            raise RuntimeError(
                "Missing required production environment variables: "
                + ", ".join(missing)
            )

    def to_log_safe_dict(self) -> dict[str, object]:
        """
        A redacted representation safe for structured logs / diagnostics.
        """
        return {
            "environment": self.normalized_environment,
            "log_level": self.log_level,
            "aws": {
                "aws_region": self.aws_region,
                "ddb_table_name": self.ddb_table_name,
                "ddb_endpoint_url": self.ddb_endpoint_url,
            },
            "cursor_token_secret_configured": bool((self.cursor_token_secret or "").strip()),
            "rfp_outcomes_page_size": self.rfp_outcomes_page_size,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings()
    s.require_in_production()
    return s


# Module-level singleton.
settings = get_settings()
