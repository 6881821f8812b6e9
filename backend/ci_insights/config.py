from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncConfig(BaseModel):
    """Tunables shared by the CI aggregator, the backfiller and the item sync."""

    # Daily snapshots / date index
    retention_days: int = Field(180, ge=1)
    current_ttl_seconds: int = 60 * 60
    rolling_window_days: int = 7
    recent_failures_limit: int = Field(5, ge=1)

    # CI fan-out
    job_batch_size: int = Field(8, ge=1)
    backfill_runs_per_day: int = 100
    backfill_delay_seconds: float = 0.1

    # GraphQL pagination
    page_size: int = Field(100, ge=1, le=100)
    page_delay_seconds: float = 0.05
    stop_threshold: int = Field(100, ge=1)
    overlap_minutes: int = 10


class TriageConfig(BaseModel):
    blocking_labels: list[str] = [
        "awaiting reporter response",
        "needs reproduction",
        "awaiting Cloudflare response",
        "blocked",
    ]
    awaiting_dev_labels: list[str] = [
        "awaiting reporter response",
        "needs reproduction",
        "awaiting dev response",
    ]
    list_limit: int = 100


class BusFactorConfig(BaseModel):
    monitored_directories: list[str] = [
        "packages/chrome-devtools-patches",
        "packages/vite-plugin-cloudflare",
        "packages/vite-plugin-cloudflare/src",
        "packages/wrangler/src/auth",
        "packages/wrangler/src/deploy",
        "packages/wrangler/src/dev",
        "packages/wrangler/src/pages",
        "packages/wrangler/src/d1",
        "packages/wrangler/src/kv",
        "packages/wrangler/src/r2",
        "packages/wrangler/src/queues",
        "packages/wrangler/src/vectorize",
        "packages/wrangler/src/hyperdrive",
        "packages/wrangler/src/worker",
        "packages/wrangler/src/api",
        "packages/wrangler/src/config",
        "packages/wrangler/src/init",
        "packages/wrangler/src/publish",
        "packages/wrangler/src/secret",
        "packages/wrangler/src/tail",
        "packages/wrangler/src/metrics",
    ]
    team_members: list[str] = [
        "penalosa",
        "jamesopstad",
        "dario-piotrowicz",
        "emily-shen",
        "edmundhung",
        "NuroDev",
        "petebacondarwin",
        "ascorbic",
        "vicb",
    ]
    window_days: int = 182
    per_page: int = 100
    max_pages: int = 10
    directory_batch_size: int = 5
    batch_delay_seconds: float = 0.1
    cache_max_age_seconds: int = 60 * 60
    cache_ttl_seconds: int = 2 * 60 * 60
    top_contributors: int = 10


class Settings(BaseSettings):
    # Key-value store
    redis_url: str = "redis://localhost:6379/0"
    kv_backend: str = "redis"  # redis | memory

    # Upstream
    github_token: str = ""
    github_owner: str = "cloudflare"
    github_repo: str = "workers-sdk"
    github_api_url: str = "https://api.github.com"
    github_graphql_url: str = "https://api.github.com/graphql"
    user_agent: str = "Workers-SDK-CI-Analyzer"
    http_timeout_seconds: float = 30.0

    # CI sync
    ci_branch: str = "changeset-release/main"
    ci_run_limit: int = 100

    # Scheduler
    ci_sync_hour_utc: int = 6
    item_sync_interval_seconds: int = 60 * 60

    # App
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"  # json | text
    allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    sync: SyncConfig = SyncConfig()
    triage: TriageConfig = TriageConfig()
    bus_factor: BusFactorConfig = BusFactorConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_production(self):
        if self.environment == "production":
            if not self.github_token:
                raise ValueError(
                    "Production requires GITHUB_TOKEN (GraphQL sync is unauthenticated otherwise)"
                )
            if self.kv_backend == "memory":
                raise ValueError(
                    "Production must not use the in-memory key-value store"
                )
        return self


settings = Settings()
