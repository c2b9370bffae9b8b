"""
Crawl sink lifespan management.

Handles startup and shutdown of the long-lived resources:
  - Logging setup
  - Writer pool (and with it, every writer's MongoDB client)
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from crawl_sink.core.config import Settings, settings as default_settings
from crawl_sink.core.logging import get_logger, setup_logging
from crawl_sink.domain.models import HostHooks
from crawl_sink.main import create_processor
from crawl_sink.worker.processor import MongoWriterProcessor

logger = get_logger(__name__)


@contextmanager
def sink_lifespan(
    settings: Optional[Settings] = None, hooks: Optional[HostHooks] = None
) -> Iterator[MongoWriterProcessor]:
    """
    Manage the sink lifecycle.

    Startup:
      1. Configure structured logging
      2. Build the processor from settings
      3. Set up the writer pool

    Shutdown:
      1. Close the pool (idle writers now, borrowed ones on return)
    """
    settings = settings or default_settings

    # ── Startup ──────────────────────────────────────────────
    setup_logging(settings.log_level)
    logger.info("Starting crawl sink...")

    processor = create_processor(settings, hooks)
    processor.start()
    logger.info(
        "Crawl sink ready (collection=%s)", settings.mongo_collection or "<unset>"
    )

    try:
        yield processor
    finally:
        # ── Shutdown ─────────────────────────────────────────
        logger.info("Shutting down crawl sink...")
        processor.close()
        logger.info("Shutdown complete")
