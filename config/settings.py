"""Pydantic Settings: typed configuration with .env auto-loading."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    service_port: int = 5000
    debug: bool = False
    log_level: str = "INFO"

    # ── Generation Proxy ─────────────────────────────────────
    # Route segments of the proxy and of the upstream generation function.
    # The upstream URL is the incoming URL with the first segment replaced.
    generation_proxy_route: str = "generate-curiosity-blocks-partial"
    generation_upstream_route: str = "generate-curiosity-blocks"
    # Resolve the derived upstream path against this origin instead of the
    # request's own (set when running behind a reverse proxy).
    generation_upstream_base_url: str = ""
    generation_timeout: int = 60  # seconds, upstream LLM calls are slow
    routing_header: str = "apikey"
    max_concurrent_proxy_requests: int = 15  # per worker

    # ── Pagination defaults ──────────────────────────────────
    default_page_count: int = 2
    default_start_index: int = 0
    prefetch_root_margin: str = "0px 0px 200px 0px"

    # ── Hosted backend (named functions) ─────────────────────
    backend_base_url: str = "http://localhost:5000"
    backend_functions_prefix: str = "/functions/v1"
    backend_api_key: str = ""
    backend_access_token: str = ""
    backend_timeout: int = 15  # seconds
    save_function_name: str = "save-content-block"

    # ── Content store ────────────────────────────────────────
    content_store_max_blocks: int = 5000


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor for application settings."""
    return Settings()
