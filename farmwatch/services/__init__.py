"""
Shared service runtime.

Provides the structured logging setup used by every entry point and the
ServiceRunner base class that long-running services extend. A ServiceRunner
loads configuration, opens the store, seeds configured farms and static
bands, runs until SIGINT/SIGTERM and then cleans up.

Example:
    >>> class MyService(ServiceRunner):
    ...     @property
    ...     def service_name(self) -> str:
    ...         return "my-service"
    ...     async def _initialize(self) -> None: ...
    ...     async def _run(self) -> None:
    ...         await self.shutdown_event.wait()
    ...     async def _cleanup(self) -> None: ...
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from abc import ABC, abstractmethod
from typing import Optional

import structlog

from farmwatch.config.loader import load_config
from farmwatch.config.models import AppConfig, LogFormat
from farmwatch.interfaces.stores import DataStore
from farmwatch.storage.bootstrap import seed_from_config
from farmwatch.storage.memory import InMemoryStore


def setup_logging(level: Optional[str] = None, format: LogFormat | str = LogFormat.JSON) -> None:
    """
    Configure structlog and standard logging.

    Args:
        level: Log level name (defaults to LOG_LEVEL or INFO).
        format: "json" for machine-readable output, "text" for development.
    """
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    renderer = (
        structlog.dev.ConsoleRenderer()
        if LogFormat(format) == LogFormat.TEXT
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level, logging.INFO),
    )

    # Reduce noise from uvicorn access logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


async def create_store(config: AppConfig) -> DataStore:
    """
    Open the configured store.

    FARMWATCH_STORE=memory selects the in-process store; anything else uses
    PostgreSQL at DATABASE_URL and makes sure the schema exists.
    """
    if os.getenv("FARMWATCH_STORE", "postgres").lower() == "memory":
        store: DataStore = InMemoryStore()
        await store.connect()
        return store

    from farmwatch.storage.postgres_client import PostgresClient

    client = PostgresClient(config.postgres)
    await client.connect()
    await client.init_schema()
    return client


class ServiceRunner(ABC):
    """
    Base class for long-running services.

    Attributes:
        config_path: Directory holding the YAML configuration.
        config: Loaded configuration (after startup).
        store: Open data store (after startup).
        shutdown_event: Set when the service should stop.
        logger: Logger bound to the service name.
    """

    def __init__(self, config_path: str = "config") -> None:
        self.config_path = config_path
        self.config: Optional[AppConfig] = None
        self.store: Optional[DataStore] = None
        self.shutdown_event = asyncio.Event()
        self.logger = structlog.get_logger(self.service_name)

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Name used in logs."""
        pass

    @abstractmethod
    async def _initialize(self) -> None:
        """Service-specific startup, after config and store are ready."""
        pass

    @abstractmethod
    async def _run(self) -> None:
        """Main loop; should return once shutdown_event is set."""
        pass

    async def _cleanup(self) -> None:
        """Service-specific cleanup, before the store is closed."""
        return None

    def request_shutdown(self) -> None:
        """Ask the service to stop."""
        if not self.shutdown_event.is_set():
            self.logger.info("shutdown_requested", service=self.service_name)
            self.shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                # Not supported on this platform's event loop
                self.logger.debug("signal_handler_unsupported", signal=sig.name)

    async def _startup(self) -> None:
        self.config = load_config(self.config_path)
        logging_config = self.config.features.logging
        setup_logging(self.config.log_level.value, logging_config.format)

        self.store = await create_store(self.config)
        await seed_from_config(self.store, self.config)

    async def run(self) -> None:
        """Start, run until shutdown, then clean up."""
        self._install_signal_handlers()
        await self._startup()
        self.logger.info("service_started", service=self.service_name)

        try:
            await self._initialize()
            await self._run()
        finally:
            try:
                await self._cleanup()
            finally:
                if self.store is not None:
                    await self.store.close()
                self.logger.info("service_stopped", service=self.service_name)
