from dataclasses import replace

from fmconnect.domain.config import (
    ConfigRecord,
    LayoutsConfig,
    PreferencesConfig,
    ServerConfig,
    default_record,
)


class TestDefaults:
    def test_default_values(self):
        record = default_record()
        assert record.server == ServerConfig("localhost", 443, "https", 30000)
        assert record.database.name == "AuditPro"
        assert record.database.solution == "AuditPro.fmp12"
        assert record.authentication.username == ""
        assert record.authentication.auth_type == "basic"
        assert record.authentication.token_expiry == 3600
        assert record.connection.max_connections == 10
        assert record.connection.retry_attempts == 3
        assert record.layouts.non_conformities == "NonConformities"
        assert record.preferences.use_mock_data is True
        assert record.preferences.log_level == "info"
        assert record.is_demo

    def test_password_not_in_repr(self, production_record):
        assert "s3cret" not in repr(production_record)


class TestFromDict:
    def test_not_a_dict_gives_defaults(self):
        assert ConfigRecord.from_dict(None) == default_record()
        assert ConfigRecord.from_dict([1, 2]) == default_record()

    def test_missing_section_filled_per_section(self):
        record = ConfigRecord.from_dict({"server": {"host": "fm.local", "port": 8443}})
        assert record.server.host == "fm.local"
        assert record.server.port == 8443
        # Поля, которых нет в секции, берутся из defaults этой секции
        assert record.server.protocol == "https"
        assert record.server.timeout == 30000
        assert record.database == default_record().database

    def test_unknown_keys_ignored(self):
        record = ConfigRecord.from_dict(
            {"server": {"host": "fm.local", "color": "red"}, "extra": {"a": 1}}
        )
        assert record.server.host == "fm.local"
        assert not hasattr(record, "extra")

    def test_camel_case_keys(self):
        record = ConfigRecord.from_dict(
            {
                "preferences": {"useMockData": False, "logLevel": "debug"},
                "connection": {"verifySSL": False, "maxConnections": 4},
                "layouts": {"nonConformities": "NC_API"},
            }
        )
        assert record.preferences.use_mock_data is False
        assert record.preferences.log_level == "debug"
        assert record.connection.verify_ssl is False
        assert record.connection.max_connections == 4
        assert record.layouts.non_conformities == "NC_API"

    def test_invalid_values_fall_back_to_defaults(self):
        record = ConfigRecord.from_dict(
            {
                "server": {"port": 70000, "protocol": "ftp", "timeout": 0},
                "authentication": {"authType": "kerberos"},
                "preferences": {"useMockData": "no", "logLevel": "verbose"},
            }
        )
        assert record.server.port == 443
        assert record.server.protocol == "https"
        assert record.server.timeout == 30000
        assert record.authentication.auth_type == "basic"
        assert record.preferences.use_mock_data is True
        assert record.preferences.log_level == "info"

    def test_numeric_strings_accepted(self):
        record = ConfigRecord.from_dict({"server": {"port": "8080"}})
        assert record.server.port == 8080


class TestSerialization:
    def test_to_dict_uses_wire_names(self, production_record):
        data = production_record.to_dict()
        assert set(data) == {
            "server",
            "database",
            "authentication",
            "connection",
            "layouts",
            "preferences",
        }
        assert data["preferences"]["useMockData"] is False
        assert data["connection"]["enableSSL"] is True
        assert data["authentication"]["tokenExpiry"] == 3600

    def test_dict_round_trip(self, production_record):
        record = replace(
            production_record,
            layouts=LayoutsConfig(audits="Audits_API", evidence="Evidence_API"),
            preferences=PreferencesConfig(use_mock_data=False, debug_mode=True, log_level="warn"),
        )
        assert ConfigRecord.from_dict(record.to_dict()) == record

    def test_to_env(self, production_record):
        assert production_record.to_env() == {
            "FILEMAKER_HOST": "fm.example.com",
            "FILEMAKER_PORT": "443",
            "FILEMAKER_DATABASE": "AuditPro",
            "FILEMAKER_USERNAME": "api_user",
            "FILEMAKER_PASSWORD": "s3cret",
            "USE_MOCK_DATA": "false",
        }

    def test_with_mock_data_returns_copy(self, production_record):
        demo = production_record.with_mock_data(True)
        assert demo.preferences.use_mock_data is True
        assert production_record.preferences.use_mock_data is False
