"""Environment-driven settings for the API and its hosted collaborators."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    APP_NAME: str = os.getenv("APP_NAME", "Viabilidade API")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Hosted database (Supabase / PostgREST)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
    PROJECTS_TABLE: str = os.getenv("PROJECTS_TABLE", "projects")
    LANDS_TABLE: str = os.getenv("LANDS_TABLE", "lands")
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "10"))

    # Local fallback when the hosted database is unreachable
    LOCAL_STORE_DIR: str = os.getenv("LOCAL_STORE_DIR", ".local_store")

    # Narrative advisor
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
    ADVISOR_MODEL: str = os.getenv("ADVISOR_MODEL", "claude-sonnet-4-20250514")


settings = Settings()
