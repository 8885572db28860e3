import pytest
from pydantic import ValidationError

from expense_categorizer.settings import Settings, get_settings


def test_defaults():
    settings = get_settings()
    assert settings.fuzzy_match_threshold == 0.6
    assert settings.fuzzy_candidate_limit == 5
    assert settings.pattern_cache_ttl == 300


def test_plain_postgres_url_gets_asyncpg_driver(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/expenses")
    assert get_settings().async_database_url == "postgresql+asyncpg://u:p@db:5432/expenses"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('["https://a.com", "http://localhost:3000"]', ["https://a.com", "http://localhost:3000"]),
        ("https://a.com, https://b.com", ["https://a.com", "https://b.com"]),
        ("", []),
    ],
)
def test_cors_origins_parsing(monkeypatch: pytest.MonkeyPatch, raw, expected):
    monkeypatch.setenv("CORS_ORIGINS", raw)
    assert get_settings().cors_origins == expected


def test_threshold_env_override(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("FUZZY_MATCH_THRESHOLD", "0.75")
    assert get_settings().fuzzy_match_threshold == 0.75


def test_threshold_out_of_range_rejected(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("FUZZY_MATCH_THRESHOLD", "1.5")
    with pytest.raises(ValidationError):
        Settings()
