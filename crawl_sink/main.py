"""
Crawl sink entrypoint.

Builds a configured ``MongoWriterProcessor`` that a crawler host can
drive. The pool is set up by ``start()``, usually through
``crawl_sink.core.lifespan.sink_lifespan``.
"""

from typing import Optional

from crawl_sink.core.config import Settings, settings as default_settings
from crawl_sink.domain.models import HostHooks
from crawl_sink.worker.processor import MongoWriterProcessor


def create_processor(
    settings: Optional[Settings] = None, hooks: Optional[HostHooks] = None
) -> MongoWriterProcessor:
    """Processor factory: wires settings into parameters and pool knobs."""
    settings = settings or default_settings

    return MongoWriterProcessor(
        settings.to_parameters(),
        hooks=hooks,
        pool_max_active=settings.pool_max_active,
        max_wait_for_idle_ms=settings.max_wait_for_idle_ms,
        max_file_size_bytes=settings.max_file_size_bytes,
        connect_retries=settings.mongo_connect_retries,
        connect_base_delay=settings.mongo_connect_base_delay,
        server_selection_timeout_ms=settings.mongo_server_selection_timeout_ms,
        degraded_cooldown_ms=settings.degraded_cooldown_ms,
    )
