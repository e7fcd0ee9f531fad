import json

from fmconnect.domain.status import Disconnected, Mode
from fmconnect.events.publisher import EventPublisher
from fmconnect.logger.logger import Logger
from fmconnect.logger.postgres_writer import LOG_COLUMNS, PostgresWriter, entry_to_row
from fmconnect.logger.types import Category, Level, MASK, param, redact


class TestRedaction:
    def test_sensitive_keys_masked(self):
        context = redact(
            {
                "password": "s3cret",
                "db_password": "x",
                "host": "fm.local",
                "authentication": {"username": "api", "password": "y"},
            }
        )
        assert context == {
            "password": MASK,
            "db_password": MASK,
            "host": "fm.local",
            "authentication": {"username": "api", "password": MASK},
        }

    def test_logged_entry_has_no_password(self, capsys):
        logger = Logger("fmconnect-test", "test")
        logger.info("saving", param("password", "s3cret"), param("host", "fm.local"))
        out = capsys.readouterr().out
        assert "s3cret" not in out
        assert "fm.local" in out


class TestLevels:
    def test_parse(self):
        assert Level.parse("WARNING", Level.INFO) is Level.WARN
        assert Level.parse("nonsense", Level.INFO) is Level.INFO
        assert Level.parse(None, Level.DEBUG) is Level.DEBUG

    def test_below_minimum_dropped(self, capsys):
        logger = Logger("fmconnect-test", "test", level=Level.WARN)
        logger.info("quiet")
        logger.warn("loud")
        out = capsys.readouterr().out
        assert "quiet" not in out
        assert "loud" in out

    def test_derived_logger_keeps_level_and_category(self, capsys):
        logger = Logger("fmconnect-test", "test", level=Level.ERROR).with_category(Category.MONITOR)
        logger.warn("dropped")
        logger.error("kept")
        out = capsys.readouterr().out
        assert "dropped" not in out
        assert "[error] monitor: kept" in out


def test_entry_row_matches_columns():
    logger = Logger("fmconnect-test", "test")
    entry = logger._build_entry(Level.INFO, "msg", None, param("mode", Mode.DEMO))
    row = entry_to_row(entry)
    assert len(row) == len(LOG_COLUMNS)
    assert json.loads(row[LOG_COLUMNS.index("context")]) == {"mode": "demo"}


async def test_writer_without_connection_falls_back_to_stderr(capsys):
    writer = PostgresWriter(dsn="", batch_size=2)
    logger = Logger("fmconnect-test", "test", writer=writer).with_category(Category.CONFIG)
    entry = logger._build_entry(Level.WARN, "config unreadable", None, param("token", "abc"))

    await writer.write(entry)
    assert writer.buffer == [entry]
    await writer.write(entry)

    lines = capsys.readouterr().err.strip().splitlines()
    assert len(lines) == 2
    record = json.loads(lines[0])
    assert record["category"] == "config"
    assert record["context"] == {"token": "***"}
    assert writer.buffer == []


class FakeRedis:
    def __init__(self):
        self.messages = []

    async def xadd(self, stream, message, maxlen=None, approximate=True):
        self.messages.append((stream, message))
        return f"{len(self.messages)}-0"


class FakeRedisClient:
    def __init__(self):
        self.redis = FakeRedis()

    def get_redis(self):
        return self.redis


async def test_publisher_sends_status():
    client = FakeRedisClient()
    publisher = EventPublisher(client, "filemaker-status")

    await publisher.publish_status(Disconnected(mode=Mode.PRODUCTION))

    stream, message = client.redis.messages[0]
    assert stream == "filemaker-status"
    assert message["event_type"] == "connection_status_changed"
    data = json.loads(message["data"])
    assert data["state"] == "disconnected"
    assert data["mode"] == "production"
