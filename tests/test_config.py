from sqlalchemy import create_engine, inspect

from pixelbridge.config import AppConfig, load_config
from pixelbridge.db.migrate import SCHEMA_PATH, run_migrations, split_statements
from pixelbridge.ingest import load_tenants


def test_load_config_reads_environment(monkeypatch):
    monkeypatch.setenv("SHOPIFY_API_SECRET", "abc")
    monkeypatch.setenv("APP_ENV", "development")
    monkeypatch.setenv("META_GRAPH_API_VERSION", "v25.0")
    monkeypatch.setenv("META_FORWARD_TIMEOUT", "2.5")
    config = load_config()
    assert config.shopify_api_secret == "abc"
    assert not config.is_production
    assert config.graph_base == "https://graph.facebook.com/v25.0"
    assert config.forward_timeout == 2.5


def test_defaults_are_production():
    config = AppConfig()
    assert config.is_production
    assert config.graph_base == "https://graph.facebook.com/v24.0"


def test_schema_splits_into_statements():
    statements = list(split_statements(SCHEMA_PATH.read_text()))
    assert all(stmt.rstrip().endswith(";") for stmt in statements)
    assert sum("CREATE TABLE" in stmt for stmt in statements) == 5
    assert list(split_statements("-- comment\nSELECT 1;\n\nSELECT 2")) == ["SELECT 1;", "SELECT 2"]


def test_run_migrations_on_sqlite_uses_metadata():
    engine = create_engine("sqlite://", future=True)
    run_migrations(engine)
    assert set(inspect(engine).get_table_names()) == {"tenants", "tenant_settings", "events", "catalogs", "custom_events"}


def test_load_tenants(tmp_path):
    assert [t["app_id"] for t in load_tenants()] == ["demo-hexco", "demo-lumi"]
    path = tmp_path / "tenants.yml"
    path.write_text("- app_id: a\n  name: A\n  shop_domain: a.myshopify.com\n- app_id: b\n  name: B\n  shop_domain: b.myshopify.com\n")
    assert load_tenants(path, limit=1) == [{"app_id": "a", "name": "A", "shop_domain": "a.myshopify.com"}]
