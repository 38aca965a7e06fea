"""Wiring of the store, repository and session controller from config."""

import logging
from dataclasses import dataclass

from .config import Config
from .events import EventFactory
from .session import SessionController, TimerEngine
from .sync import EventRepository, MemoryGateway, SyncGateway

logger = logging.getLogger(__name__)


def create_gateway(config: Config) -> SyncGateway:
    """Create the store gateway selected by ``store.backend``."""
    backend = config.store.backend
    if backend == "memory":
        return MemoryGateway()
    if backend == "mqtt":
        from .sync.mqtt_gateway import MQTTGateway

        return MQTTGateway(config.mqtt, put_timeout=config.store.put_timeout_seconds)
    raise ValueError(f"Unknown store backend: {backend}")


@dataclass
class Runtime:
    """Running ParkRelief components."""

    config: Config
    gateway: SyncGateway
    repository: EventRepository
    controller: SessionController

    async def start(self) -> bool:
        """Connect to the store and start following the event log.

        Returns:
            False if the store could not be reached.
        """
        if not await self.gateway.connect():
            logger.error(f"Could not connect to {self.config.store.backend} store")
            return False

        self.repository.start()
        synced = await self.repository.wait_until_synced(
            self.config.store.initial_sync_timeout_seconds
        )
        if not synced:
            logger.warning("Initial sync not complete yet, event list may be partial")
        return True

    async def close(self) -> None:
        await self.controller.timer.close()
        await self.repository.stop()
        await self.gateway.close()


def build_runtime(config: Config, gateway: SyncGateway | None = None) -> Runtime:
    """Assemble the components without connecting anything."""
    gateway = gateway or create_gateway(config)
    repository = EventRepository(gateway, namespace=config.store.namespace)
    timer = TimerEngine(
        tick_interval=config.session.tick_interval_seconds,
        default_duration_minutes=config.session.default_duration_minutes,
    )
    controller = SessionController(timer, EventFactory(), repository)
    return Runtime(config, gateway, repository, controller)
