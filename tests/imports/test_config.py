from ticketops.core.config import Settings


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://ops@db/tickets")
    monkeypatch.setenv("DB_SCHEMA", "ops")
    monkeypatch.setenv("RECLASSIFY_MIN_CONFIDENCE", "0.55")
    monkeypatch.setenv("ADMIN_TOKENS", "adm-1,adm-2")
    monkeypatch.setenv("ENABLE_METRICS", "false")

    cfg = Settings()

    assert cfg.database_url == "postgresql+psycopg://ops@db/tickets"
    assert cfg.DB_SCHEMA == "ops"
    assert cfg.RECLASSIFY_MIN_CONFIDENCE == 0.55
    assert cfg.ADMIN_TOKENS == "adm-1,adm-2"
    assert cfg.enable_metrics is False
    assert cfg.DELIVERY_TABLE == "delivery_tickets"


def test_settings_surface():
    assert set(Settings.model_fields) == {
        "database_url",
        "log_level",
        "enable_metrics",
        "DB_SCHEMA",
        "IMPORTS_TABLE",
        "DELIVERY_TABLE",
        "SERVICE_TABLE",
        "CORS_ALLOW_ORIGINS",
        "IMPORTS_LIST_MAX_LIMIT",
        "RECLASSIFY_MIN_CONFIDENCE",
        "CURSOR_HMAC_KEY",
        "ADMIN_TOKENS",
    }
