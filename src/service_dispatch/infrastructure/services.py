"""Dependency injection and service factory."""

from typing import Optional

from .config import Settings, get_settings
from .database.connection import DatabaseManager
from .logging import get_logger
from .notifications import LoggingNotificationDispatcher, WebhookNotificationDispatcher
from .repositories.sql_repositories import SQLAlchemyBookingSequenceRepository, SQLAlchemyUnitOfWork
from ..application.ports.notifications import NotificationDispatcher
from ..application.services.dispatch_coordinator import DispatchCoordinator
from ..application.services.sequence_generator import SequenceGenerator
from ..domain.services.dispatch_engine import DispatchEngine


class ServiceFactory:
    """Factory for creating application services with proper dependencies."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.database_manager = DatabaseManager(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping
        )
        self._connected = False
        self._notifier: Optional[NotificationDispatcher] = None
        self._coordinator: Optional[DispatchCoordinator] = None
        self._logger = get_logger(__name__)

    async def initialize(self):
        """Initialize the service factory."""
        if not self._connected:
            await self.database_manager.connect()
            self._connected = True
            self._logger.info("Service factory initialized")

    async def shutdown(self):
        """Stop retry loops, close the webhook client and disconnect."""
        if self._coordinator is not None:
            await self._coordinator.shutdown()
            self._coordinator = None
        if isinstance(self._notifier, WebhookNotificationDispatcher):
            await self._notifier.aclose()
        self._notifier = None

        if self._connected:
            await self.database_manager.disconnect()
            self._connected = False
            self._logger.info("Service factory shut down")

    def unit_of_work(self) -> SQLAlchemyUnitOfWork:
        """Create a new unit of work bound to the database."""
        return SQLAlchemyUnitOfWork(self.database_manager)

    def get_sequence_generator(self) -> SequenceGenerator:
        return SequenceGenerator(
            SQLAlchemyBookingSequenceRepository(self.database_manager),
            prefix=self.settings.booking_number_prefix,
            width=self.settings.booking_number_width,
            sequence_name=self.settings.booking_sequence_name
        )

    def get_notifier(self) -> NotificationDispatcher:
        """Get the webhook notifier when configured, otherwise log events."""
        if self._notifier is None:
            if self.settings.notification_webhook_url:
                self._notifier = WebhookNotificationDispatcher(
                    self.settings.notification_webhook_url,
                    timeout=self.settings.notification_timeout_seconds
                )
            else:
                self._notifier = LoggingNotificationDispatcher()
        return self._notifier

    def get_dispatch_engine(self) -> DispatchEngine:
        return DispatchEngine(
            rating_weight=self.settings.dispatch_rating_weight,
            distance_weight=self.settings.dispatch_distance_weight,
            travel_speed_kmh=self.settings.travel_speed_kmh
        )

    def get_dispatch_coordinator(self) -> DispatchCoordinator:
        """Get the process-wide dispatch coordinator.

        A single instance owns the background retry loops, so it is created
        once and reused.
        """
        if self._coordinator is None:
            self._coordinator = DispatchCoordinator(
                unit_of_work_factory=self.unit_of_work,
                sequence_generator=self.get_sequence_generator(),
                notifier=self.get_notifier(),
                dispatch_engine=self.get_dispatch_engine(),
                urgent_retry_policy=self.settings.urgent_retry_policy(),
                normal_retry_policy=self.settings.normal_retry_policy()
            )
        return self._coordinator


# Global service factory instance
_service_factory: Optional[ServiceFactory] = None


def get_service_factory() -> ServiceFactory:
    """Get the global service factory instance."""
    global _service_factory

    if _service_factory is None:
        _service_factory = ServiceFactory(get_settings())

    return _service_factory


async def initialize_services():
    """Initialize application services."""
    factory = get_service_factory()
    await factory.initialize()


async def shutdown_services():
    """Shutdown application services."""
    factory = get_service_factory()
    await factory.shutdown()
