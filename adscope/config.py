from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Backend adapter chain, tried left to right
    adapter_chain: str = "apify,facebook_api,playwright,http"  # apify | facebook_api | playwright | http | sample
    default_country: str = "US"
    default_limit: int = 50
    log_empty_as_failure: bool = False  # log zero-result adapters as warnings instead of debug

    # Apify (premium scraping service)
    apify_api_token: str = ""
    apify_base_url: str = "https://api.apify.com/v2"
    apify_actor_id: str = "jj5sAMeSoXotatkss"
    apify_timeout_seconds: float = 300.0
    apify_min_interval_seconds: float = 1.0

    # Facebook Ad Library Graph API
    facebook_access_token: str = ""
    facebook_graph_base_url: str = "https://graph.facebook.com"
    facebook_api_version: str = "v19.0"
    facebook_timeout_seconds: float = 30.0
    facebook_min_interval_seconds: float = 1.0

    # Scrapers
    playwright_headless: bool = True
    playwright_timeout_ms: int = 60000
    playwright_min_interval_seconds: float = 2.0
    http_scraper_base_url: str = "https://www.facebook.com/ads/library/"
    http_scraper_timeout_seconds: float = 30.0
    http_scraper_min_interval_seconds: float = 2.0

    # Synthesis provider chain, tried left to right
    synthesis_chain: str = "ollama,huggingface,anthropic,openai,heuristic"  # + openrouter
    synthesis_max_tokens: int = 2000
    synthesis_temperature: float = 0.3
    synthesis_timeout_seconds: float = 120.0

    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1:8b"
    huggingface_api_key: str = ""
    huggingface_model: str = "mistralai/Mixtral-8x7B-Instruct-v0.1"
    huggingface_base_url: str = "https://api-inference.huggingface.co/models"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "openai/gpt-4o-mini"

    # Job / workflow store
    store_backend: str = "memory"  # memory | json
    store_dir: str = ".cache/adscope/records"
    store_ttl_hours: int = 24  # 0 disables expiry
    store_max_records: int = 1000  # 0 disables the cap
    store_eviction_interval_seconds: float = 300.0

    # SSE status streams
    stream_poll_interval_seconds: float = 1.0

    # App
    cors_origins: str = "http://localhost:4200"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"
    log_to_file: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def adapter_chain_list(self) -> list[str]:
        return _split_names(self.adapter_chain)

    @property
    def synthesis_chain_list(self) -> list[str]:
        return _split_names(self.synthesis_chain)


def _split_names(raw: str) -> list[str]:
    return [name.strip().lower() for name in raw.split(",") if name.strip()]


settings = Settings()
