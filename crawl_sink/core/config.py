"""
Application configuration using Pydantic Settings.

All configuration is read from environment variables (12-factor app),
with defaults that match the crawler's stock MongoDB sink. The settings
are turned into an immutable ``MongoParameters`` bundle before any
writer sees them.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from crawl_sink.domain.models import (
    BULK_DOC_NUMBER,
    DEFAULT_DEGRADED_COOLDOWN_MS,
    CONTENT_PREFIX,
    CURI_PREFIX,
    DEFAULT_MAX_CONTENT_SIZE_IN_BYTES,
    DEFAULT_MONGODB_PORT,
    MongoParameters,
)


class Settings(BaseSettings):
    """Central application configuration."""

    # MongoDB
    mongo_host: str = Field(default="", description="MongoDB host")
    mongo_port: int = Field(
        default=DEFAULT_MONGODB_PORT, description="MongoDB port"
    )
    mongo_database: str = Field(default="", description="MongoDB database name")
    mongo_collection: str = Field(
        default="", description="Collection receiving crawl documents"
    )
    mongo_user: str = Field(
        default="", description="MongoDB user, empty disables authentication"
    )
    mongo_password: str = Field(default="", description="MongoDB password")
    mongo_connect_retries: int = Field(
        default=3, description="Connection attempts per writer before giving up"
    )
    mongo_connect_base_delay: float = Field(
        default=0.5, description="Initial retry delay in seconds, doubles each retry"
    )
    mongo_server_selection_timeout_ms: int = Field(
        default=5000, description="pymongo serverSelectionTimeoutMS"
    )

    # Document schema
    content_prefix: str = Field(
        default=CONTENT_PREFIX, description="Prefix for content columns"
    )
    curi_prefix: str = Field(
        default=CURI_PREFIX, description="Prefix for crawl URI columns"
    )

    # Write policy
    remove_missing_pages: bool = Field(
        default=True, description="Skip 404/410 responses"
    )
    separate_headers: bool = Field(
        default=True, description="Store HTTP headers apart from the payload"
    )
    max_content_size_bytes: int = Field(
        default=DEFAULT_MAX_CONTENT_SIZE_IN_BYTES,
        description="Largest decoded payload written, 0 disables the cap",
    )
    bulk_doc_number: int = Field(
        default=BULK_DOC_NUMBER, description="Batching hint (inserts stay single)"
    )
    time_zone: Optional[str] = Field(
        default=None, description="Zone for the processed-at column, unset omits it"
    )

    # Writer pool
    pool_max_active: int = Field(default=1, description="Maximum live writers")
    max_wait_for_idle_ms: int = Field(
        default=300000, description="How long a borrow waits for an idle writer"
    )
    max_file_size_bytes: Optional[int] = Field(
        default=None,
        description="Largest URI content size written, defaults to the content cap",
    )
    degraded_cooldown_ms: int = Field(
        default=DEFAULT_DEGRADED_COOLDOWN_MS,
        description="How long a writer without a store fails fast before it is rebuilt",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Application log level (DEBUG, INFO, WARNING, ERROR)",
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def to_parameters(self) -> MongoParameters:
        """Build the immutable parameter bundle the writers share."""
        return MongoParameters(
            host=self.mongo_host,
            port=self.mongo_port,
            database=self.mongo_database,
            collection=self.mongo_collection,
            user=self.mongo_user,
            password=self.mongo_password,
            content_prefix=self.content_prefix,
            curi_prefix=self.curi_prefix,
            remove_missing_pages=self.remove_missing_pages,
            separate_headers=self.separate_headers,
            max_content_size_bytes=self.max_content_size_bytes,
            bulk_doc_number=self.bulk_doc_number,
            time_zone=self.time_zone,
        )


# Singleton: import this throughout the app
settings = Settings()
