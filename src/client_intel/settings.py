"""Service settings for the Client Intelligence Engine."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the Client Intelligence Engine.

    Covers the local data sources, snapshot freshness, the two costly
    enrichment tiers (search and generative AI) with their caches and daily
    quotas, and the recommendation/similarity tuning knobs.
    """

    service_name: str = "client-intel"
    log_level: str = "INFO"
    log_json: bool = True

    # Local data sources
    roster_path: str = "data/clients.json"
    billing_path: str = "data/usage.csv"
    catalog_path: str = "data/catalog.json"
    source_load_timeout_seconds: float = 10.0

    # Period treated as "recent" for activity flags (YYYY-MM). None = latest billed period.
    recent_period: str | None = None

    # Snapshot freshness window, checked at read time
    snapshot_ttl_seconds: int = 300

    # Reporting currency and static conversion table (units of reporting currency per 1 unit)
    reporting_currency: str = "USD"
    currency_rates: dict[str, float] = Field(
        default_factory=lambda: {
            "USD": 1.0,
            "INR": 0.012,
            "EUR": 1.08,
            "GBP": 1.27,
            "SGD": 0.74,
            "AED": 0.27,
            "IDR": 0.000064,
            "VND": 0.000041,
        }
    )

    # External search tier (Google Custom Search)
    search_api_key: str | None = None
    search_engine_id: str | None = None
    search_base_url: str = "https://www.googleapis.com/customsearch/v1"
    search_timeout_seconds: float = 10.0
    search_cache_ttl_seconds: int = 24 * 3600
    search_daily_quota: int = 100
    search_cost_per_call_usd: float = 0.005

    # Generative AI tier (OpenAI-compatible chat completions)
    ai_api_key: str | None = None
    ai_base_url: str = "https://api.openai.com/v1"
    ai_model: str = "gpt-4o-mini"
    ai_timeout_seconds: float = 30.0
    ai_cache_ttl_seconds: int = 7 * 24 * 3600
    ai_daily_quota: int = 500
    ai_cost_per_call_usd: float = 0.01

    # Optional on-disk persistence for the tier caches
    cache_dir: str | None = None
    cache_io_timeout_seconds: float = 2.0

    # Batch operations
    batch_max_concurrency: int = 5

    # Usage sessions retained for /sessions lookups
    max_sessions: int = 1000

    # Similarity and recommendation tuning
    same_segment_boost: float = 1.3
    similar_neighbors: int = 5
    default_recommendation_limit: int = 10
    upsell_top_n: int = 5

    # Optional relational backend for overlays and the usage ledger
    database_url: str | None = None

    model_config = SettingsConfigDict(env_prefix="CLIENT_INTEL_")
