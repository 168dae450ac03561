"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Reconciler settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Portal deal store
    PORTAL_API_URL: str = "http://localhost:3001/api"
    PORTAL_API_TOKEN: str = ""
    PORTAL_RECORDS_PATH: str = "/admin/deals/raw"
    PORTAL_RECORD_PATH: str = "/deals/{record_id}"  # Formatted with the portal record id
    PORTAL_OPPORTUNITY_ID_KEY: str = "ghlOpportunityId"
    PORTAL_CONTACT_ID_KEY: str = "ghlContactId"
    PORTAL_LABEL_KEY: str = "dealId"

    # External CRM
    CRM_API_URL: str = "https://rest.gohighlevel.com/v1"
    CRM_API_KEY: str = ""
    CRM_API_VERSION: str = "2021-07-28"
    CRM_PIPELINE_ID: str = ""

    # HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Bulk sync throttle between records
    SYNC_DELAY_SECONDS: float = 0.5

    # Field mapping table (empty = packaged default)
    FIELD_MAPPING_FILE: str = ""


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
