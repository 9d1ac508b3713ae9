import pytest
from pydantic import ValidationError

from graphcrawl import config
from graphcrawl.config import load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(config._ENV_OVERRIDES) + ["GRAPHCRAWL_CONFIG"]:
        monkeypatch.delenv(name, raising=False)
    # keep a developer's .env out of the picture
    monkeypatch.setattr(config, "load_dotenv", lambda *args, **kwargs: False)


def test_defaults_when_file_is_missing(tmp_path):
    settings = load_settings(str(tmp_path / "missing.yml"))

    assert settings.site == "letterboxd.LetterboxdSite"
    assert settings.crawl.batch_size == 10
    assert settings.crawl.max_frontier_size == 500
    assert settings.fetcher.kind == "playwright"
    assert settings.repair.schedule == "0 4 * * *"
    assert settings.discord.token is None


def test_yaml_file_is_loaded(tmp_path):
    path = tmp_path / "crawler.yml"
    path.write_text(
        "database:\n"
        "  path: data/films.db\n"
        "fetcher:\n"
        "  kind: http\n"
        "crawl:\n"
        "  target: 25\n"
        "  max_actors_per_item: null\n"
    )

    settings = load_settings(str(path))

    assert settings.database.path == "data/films.db"
    assert settings.fetcher.kind == "http"
    assert settings.crawl.target == 25
    assert settings.crawl.max_actors_per_item is None
    assert settings.crawl.delay_seconds == 1.5


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "other.yml"
    path.write_text("timezone: Europe/Stockholm\n")
    monkeypatch.setenv("GRAPHCRAWL_CONFIG", str(path))

    assert load_settings().timezone == "Europe/Stockholm"


def test_environment_overrides_the_file(tmp_path, monkeypatch):
    path = tmp_path / "crawler.yml"
    path.write_text("database:\n  path: from-file.db\nfetcher:\n  headless: true\n")
    monkeypatch.setenv("GRAPHCRAWL_DB_PATH", "from-env.db")
    monkeypatch.setenv("GRAPHCRAWL_HEADLESS", "false")
    monkeypatch.setenv("ADMIN_USER_ID", "42")
    monkeypatch.setenv("SCHEDULER_TIMEZONE", "Asia/Tokyo")

    settings = load_settings(str(path))

    assert settings.database.path == "from-env.db"
    assert settings.fetcher.headless is False
    assert settings.discord.admin_user_id == 42
    assert settings.timezone == "Asia/Tokyo"


def test_invalid_values_are_rejected(tmp_path):
    path = tmp_path / "crawler.yml"
    path.write_text("crawl:\n  batch_size: 0\n")

    with pytest.raises(ValidationError):
        load_settings(str(path))


def test_unknown_fetcher_kind_is_rejected(tmp_path):
    path = tmp_path / "crawler.yml"
    path.write_text("fetcher:\n  kind: curl\n")

    with pytest.raises(ValidationError):
        load_settings(str(path))
