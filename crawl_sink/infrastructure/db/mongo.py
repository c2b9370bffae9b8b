"""
MongoDB client lifecycle management.

Each writer owns one ``MongoClient``. This module opens it with
retry-backoff, verifies it with a ping (which also runs authentication
when credentials are configured) and closes it quietly.
"""

import time
from typing import Optional

from pymongo import MongoClient
from pymongo.errors import (
    ConfigurationError,
    ConnectionFailure,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from crawl_sink.core.exceptions import StoreUnavailable
from crawl_sink.core.logging import get_logger
from crawl_sink.domain.models import MongoParameters

logger = get_logger(__name__)


def _client_options(
    parameters: MongoParameters, server_selection_timeout_ms: int
) -> dict:
    options = {"serverSelectionTimeoutMS": server_selection_timeout_ms}
    if parameters.user:
        options.update(
            username=parameters.user,
            password=parameters.password.get_secret_value(),
            authSource=parameters.require("database"),
        )
    return options


def connect_to_mongo(
    parameters: MongoParameters,
    max_retries: int = 3,
    base_delay: float = 0.5,
    server_selection_timeout_ms: int = 5000,
) -> MongoClient:
    """
    Open a MongoDB client with exponential backoff retry.

    Args:
        parameters: The shared parameter bundle.
        max_retries: Maximum number of connection attempts.
        base_delay: Initial delay in seconds, doubles each retry.
        server_selection_timeout_ms: How long each attempt may take.

    Returns:
        A connected (and, when configured, authenticated) client.

    Raises:
        ConfigUnset: If host or, with auth, database was never set.
        StoreUnavailable: If all retries are exhausted or auth failed.
    """
    host = parameters.require("host")
    port = parameters.port
    options = _client_options(parameters, server_selection_timeout_ms)
    attempts = max(1, max_retries)

    for attempt in range(1, attempts + 1):
        client: Optional[MongoClient] = None
        try:
            logger.info(
                "Connecting to MongoDB at %s:%d (attempt %d/%d)...",
                host,
                port,
                attempt,
                attempts,
            )
            client = MongoClient(host, port, **options)
            # Verify the connection is alive
            client.admin.command("ping")
            logger.info("MongoDB connection to %s:%d established", host, port)
            return client

        except OperationFailure as exc:
            logger.critical(
                "MongoDB authentication failed for user '%s'! "
                "Check your mongodb parameters: %s",
                parameters.user,
                exc,
            )
            close_mongo(client)
            raise StoreUnavailable(
                f"mongodb://{host}:{port}", "authentication failed"
            ) from exc

        except ConfigurationError as exc:
            logger.error("Invalid MongoDB client configuration: %s", exc)
            close_mongo(client)
            raise StoreUnavailable(f"mongodb://{host}:{port}", str(exc)) from exc

        except (ConnectionFailure, ServerSelectionTimeoutError) as exc:
            close_mongo(client)
            if attempt == attempts:
                logger.error(
                    "Failed to connect to MongoDB at %s:%d after %d attempts",
                    host,
                    port,
                    attempts,
                )
                raise StoreUnavailable(
                    f"mongodb://{host}:{port}",
                    f"could not connect after {attempts} attempts",
                ) from exc

            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "MongoDB connection attempt %d failed: %s. Retrying in %.1fs...",
                attempt,
                str(exc),
                delay,
            )
            time.sleep(delay)

    raise StoreUnavailable(f"mongodb://{host}:{port}", "no connection attempt made")


def close_mongo(client: Optional[MongoClient]) -> None:
    """Close a client, logging rather than raising on failure."""
    if client is None:
        return
    try:
        client.close()
    except Exception as exc:
        logger.warning("Exception in closing MongoDB client %r: %s", client, exc)
