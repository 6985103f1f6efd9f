from pathlib import Path

from incidentfeed.ingest.fetcher import Fetcher
from incidentfeed.utils.config import load_config

REPO_CONFIG = Path(__file__).resolve().parents[1] / "config.yaml"


def test_shipped_config_loads():
    conf = load_config(REPO_CONFIG)
    assert conf.ingest["timezone"] == "Europe/Prague"
    assert conf.data_dir == conf.project_root / "data"
    assert conf.db_path == conf.data_dir / "incidents.sqlite"
    assert conf.geocode["per_run_cap"] == 5


def test_env_vars_and_absolute_paths(tmp_path, monkeypatch):
    monkeypatch.setenv("FEED_DATA", str(tmp_path / "store"))
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        "data_dir: ${FEED_DATA}\n"
        "ingest:\n"
        "  rss_url: https://example.org/rss\n"
        "  timeout_s: 7\n"
        "  relays: ['https://relay.example/{url}']\n"
        "  insecure_host: Example.org\n",
        encoding="utf-8",
    )
    conf = load_config(cfg)
    assert conf.data_dir == tmp_path / "store"
    assert isinstance(conf.data_dir, Path)
    assert conf.geocode == {}

    fetcher = Fetcher.from_conf(conf)
    assert fetcher.timeout == 7.0
    assert fetcher.insecure_host == "example.org"
    assert fetcher.candidates("https://example.org/rss")[1] == "https://relay.example/https://example.org/rss"


def test_config_path_from_environment(tmp_path, monkeypatch):
    cfg = tmp_path / "other.yaml"
    cfg.write_text("data_dir: /srv/incidents\ningest:\n  rss_url: https://example.org/rss\n", encoding="utf-8")
    monkeypatch.setenv("INCIDENTFEED_CONFIG", str(cfg))
    assert load_config().data_dir == Path("/srv/incidents")
