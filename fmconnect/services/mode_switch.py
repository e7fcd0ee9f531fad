"""Demo <-> production mode transitions."""

from dataclasses import dataclass

from fmconnect.domain.config import ConfigRecord
from fmconnect.domain.status import ErrorKind, ValidationError
from fmconnect.logger.logger import get_logger
from fmconnect.logger.types import Category, param
from fmconnect.services.config_store import ConfigStore
from fmconnect.services.status_monitor import StatusMonitor
from fmconnect.services.validator import missing_production_fields


@dataclass(frozen=True)
class ModeSwitchResult:
    """Result of a production switch: the record, or why it was refused."""

    record: ConfigRecord
    error: ValidationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ModeSwitchController:
    """
    Gates mode changes.

    Production is only entered with a record whose required fields are all
    set; demo mode has no requirements. Records are never mutated in place.
    """

    def __init__(self, store: ConfigStore, monitor: StatusMonitor | None = None) -> None:
        """
        Initialize ModeSwitchController.

        Args:
            store: ConfigStore used to persist the switched record
            monitor: StatusMonitor for the follow-up check (optional)
        """
        self.store = store
        self.monitor = monitor
        self.logger = get_logger().with_category(Category.CONFIG)

    async def switch_to_production(
        self, record: ConfigRecord, updated_by: str = "system"
    ) -> ModeSwitchResult:
        """
        Switch to production if the record is complete.

        On success the record is saved and a status check is scheduled
        without waiting for it.

        Returns:
            ModeSwitchResult with the updated record or an INCOMPLETE_CONFIG error
        """
        missing = missing_production_fields(record)
        if missing:
            self.logger.warn(
                "Production mode refused: incomplete configuration",
                param("missing_fields", missing),
            )
            return ModeSwitchResult(
                record=record,
                error=ValidationError(ErrorKind.INCOMPLETE_CONFIG, tuple(missing)),
            )

        updated = record.with_mock_data(False)
        self.store.save(updated, updated_by)
        self.logger.info(
            "Switched to production mode",
            param("host", updated.server.host),
            param("database", updated.database.name),
        )
        self._schedule_check()
        return ModeSwitchResult(record=updated)

    async def switch_to_demo(self, record: ConfigRecord, updated_by: str = "system") -> ConfigRecord:
        """Switch to demo mode; always succeeds."""
        updated = record.with_mock_data(True)
        self.store.save(updated, updated_by)
        self.logger.info("Switched to demo mode")
        self._schedule_check()
        return updated

    def _schedule_check(self) -> None:
        if self.monitor is not None:
            self.monitor.schedule_check()
