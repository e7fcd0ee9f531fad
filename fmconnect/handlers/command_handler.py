"""Handlers for UI commands received from messenger."""

from collections.abc import Awaitable, Callable
from typing import Any

from fmconnect.domain.config import ConfigRecord
from fmconnect.domain.status import ValidationError
from fmconnect.logger.logger import get_logger
from fmconnect.logger.types import Category, param
from fmconnect.services.config_store import ConfigStore
from fmconnect.services.mode_switch import ModeSwitchController
from fmconnect.services.status_monitor import StatusMonitor

RejectionListener = Callable[[ValidationError], Awaitable[None]]


class CommandHandler:
    """
    Routes UI commands by ``event_type``.

    The UI never touches ConfigStore or the connection tester directly: every
    command goes through ModeSwitchController or StatusMonitor.
    """

    def __init__(
        self,
        store: ConfigStore,
        mode_switch: ModeSwitchController,
        monitor: StatusMonitor,
        on_rejected: RejectionListener | None = None,
    ) -> None:
        """
        Initialize CommandHandler.

        Args:
            store: ConfigStore for save/reset commands
            mode_switch: ModeSwitchController for mode commands
            monitor: StatusMonitor for connection tests
            on_rejected: Called when a production switch is refused
        """
        self.store = store
        self.mode_switch = mode_switch
        self.monitor = monitor
        self.on_rejected = on_rejected
        self.logger = get_logger().with_category(Category.MESSENGER)

        # Маппинг event_type -> handler method
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            "connection_test_requested": self._handle_test_requested,
            "production_mode_requested": self._handle_production_requested,
            "demo_mode_requested": self._handle_demo_requested,
            "config_saved": self._handle_config_saved,
            "config_reset_requested": self._handle_config_reset,
        }

    async def handle(self, event: dict[str, Any]) -> None:
        """
        Handle incoming command.

        Unknown commands are logged and dropped; handler errors are re-raised
        so the message stays pending.

        Args:
            event: Parsed event with event_type, event_id, data
        """
        event_type = event.get("event_type")
        event_id = event.get("event_id")

        logger = self.logger.with_request_id(event_id)
        handler = self._handlers.get(event_type or "")
        if handler is None:
            logger.warn(
                f"Unknown command: {event_type}",
                param("event_id", event_id),
                param("event_type", event_type),
            )
            return

        logger.info(
            f"Processing command: {event_type}",
            param("event_id", event_id),
            param("requested_by", event.get("requested_by")),
        )
        try:
            await handler(event)
        except Exception as e:
            logger.error(
                f"Failed to process command: {event_type}",
                e,
                param("event_id", event_id),
            )
            raise

    async def _handle_test_requested(self, event: dict[str, Any]) -> None:
        status = await self.monitor.check_now()
        self.logger.info(
            "Manual connection test finished",
            param("event_id", event.get("event_id")),
            param("state", status.state.value),
        )

    async def _handle_production_requested(self, event: dict[str, Any]) -> None:
        result = await self.mode_switch.switch_to_production(
            self.store.load(), self._requested_by(event)
        )
        if result.error is not None and self.on_rejected is not None:
            await self.on_rejected(result.error)

    async def _handle_demo_requested(self, event: dict[str, Any]) -> None:
        await self.mode_switch.switch_to_demo(self.store.load(), self._requested_by(event))

    async def _handle_config_saved(self, event: dict[str, Any]) -> None:
        """
        Replace the stored record with the one sent by the UI.

        The UI sends the full record in ``data.config``; missing sections are
        filled from defaults like on load.
        """
        config = event.get("data", {}).get("config")
        if not isinstance(config, dict):
            self.logger.warn(
                "config_saved command has no config",
                param("event_id", event.get("event_id")),
            )
            return

        record = ConfigRecord.from_dict(config)
        self.store.save(record, self._requested_by(event))
        self.monitor.schedule_check()

    async def _handle_config_reset(self, event: dict[str, Any]) -> None:
        self.store.reset(self._requested_by(event))
        self.monitor.schedule_check()

    @staticmethod
    def _requested_by(event: dict[str, Any]) -> str:
        return event.get("requested_by") or "ui"
