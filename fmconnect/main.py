"""
fmconnect service - FileMaker connectivity configuration & status monitor

Event-driven consumer без HTTP серверов.
Читает команды UI из Redis Stream, хранит конфигурацию FileMaker в PostgreSQL,
периодически проверяет подключение и публикует статус.
"""

import asyncio
import contextlib
import signal
from functools import partial

from fmconnect.config.settings import Settings
from fmconnect.database.postgres import PostgresClient
from fmconnect.events.client import RedisClient
from fmconnect.events.publisher import EventPublisher
from fmconnect.events.subscriber import EventSubscriber
from fmconnect.handlers.command_handler import CommandHandler
from fmconnect.logger.logger import get_logger, init_logger
from fmconnect.logger.postgres_writer import PostgresWriter
from fmconnect.logger.types import Category, category, param
from fmconnect.repository.config_repository import ConfigRepository
from fmconnect.services.config_store import ConfigStore
from fmconnect.services.connection_tester import ConnectionTester
from fmconnect.services.mode_switch import ModeSwitchController
from fmconnect.services.status_monitor import StatusMonitor


async def shutdown(
    monitor: StatusMonitor,
    subscriber: EventSubscriber,
    redis_client: RedisClient,
    postgres_client: PostgresClient,
    log_writer: PostgresWriter,
) -> None:
    """Graceful shutdown."""
    logger = get_logger()
    logger.info("Shutting down fmconnect...")

    # 1. Остановить чтение новых команд
    await subscriber.stop()

    # 2. Остановить периодические проверки (текущая проверка завершится)
    await monitor.close()

    # 3. Закрыть соединения
    await redis_client.close()
    await postgres_client.close()

    logger.info("Shutdown complete")

    # 4. Закрыть log writer (flush оставшихся логов)
    await log_writer.close()


async def main() -> None:
    """Main entry point."""
    settings = Settings()

    log_writer = PostgresWriter(
        dsn=settings.postgres.dsn,
        batch_size=100,
        flush_interval=5.0,
    )
    await log_writer.connect()

    init_logger(
        service_name=settings.service_name,
        environment=settings.environment,
        writer=log_writer,
        level=settings.log_level,
    )
    logger = get_logger()

    logger.info(
        "Starting fmconnect",
        param("environment", settings.environment),
        param("service_name", settings.service_name),
        param("version", settings.service_version),
    )

    postgres_client = PostgresClient(settings.postgres)
    await postgres_client.connect()
    logger.info("Connected to PostgreSQL", category(Category.DATABASE))

    config_repository = ConfigRepository(postgres_client)
    config_repository.ensure_table_exists()

    store = ConfigStore(
        config_repository,
        config_key=settings.monitor.config_key,
        env_key=settings.monitor.env_key,
    )
    tester = ConnectionTester(demo_latency=settings.monitor.demo_latency)
    monitor = StatusMonitor(store, tester)
    mode_switch = ModeSwitchController(store, monitor)

    redis_client = RedisClient(settings.redis)
    await redis_client.connect()
    logger.info(
        "Connected to messenger (Redis)",
        category(Category.MESSENGER),
        param("host", settings.redis.host),
        param("port", settings.redis.port),
    )

    publisher = EventPublisher(redis_client, settings.redis.status_stream)
    monitor.add_listener(publisher.publish_status)

    command_handler = CommandHandler(
        store,
        mode_switch,
        monitor,
        on_rejected=publisher.publish_rejection,
    )
    subscriber = EventSubscriber(
        redis_client=redis_client,
        consumer_group=settings.redis.consumer_group,
        streams=settings.redis.subscribe_streams,
    )

    # Setup graceful shutdown
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        logger.info("Received signal", param("signal", sig))
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, partial(signal_handler, sig))

    initial = await monitor.initialize()
    monitor.start_periodic_checks(settings.monitor.check_interval)

    logger.info(
        "fmconnect ready",
        param("mode", initial.mode.value),
        param("check_interval", settings.monitor.check_interval),
        param("consumer_group", settings.redis.consumer_group),
        param("streams", settings.redis.subscribe_streams),
    )

    try:
        consumer_task = asyncio.create_task(subscriber.consume(command_handler.handle))
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        # Ждём либо завершения consumer, либо сигнала shutdown
        done, pending = await asyncio.wait(
            [consumer_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    except Exception as e:
        logger.error("Fatal error in command consumer", e)
    finally:
        await shutdown(monitor, subscriber, redis_client, postgres_client, log_writer)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
