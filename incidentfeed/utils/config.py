"""
Utility that

1. Loads `config.yaml` (or the file named by $INCIDENTFEED_CONFIG)
2. Expands environment variables like  ${HOME}
3. Converts any top-level value that looks like an absolute path into
   `pathlib.Path`; a relative `data_dir` is anchored at the project root
4. Exposes a frozen `FeedConfig` dataclass.

All other modules import *only* from this file, never from `yaml` directly
→ a single point of maintenance when new parameters are added.
"""
from __future__ import annotations
import os, re, yaml
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_VAR = "INCIDENTFEED_CONFIG"

@dataclass(slots=True, frozen=True)
class FeedConfig:
    project_root: Path
    data_dir:     Path
    ingest:       dict
    geocode:      dict = field(default_factory=dict)
    store:        dict = field(default_factory=dict)

    @property
    def db_path(self) -> Path:
        db_file = Path(self.store.get("db_file", "incidents.sqlite"))
        return db_file if db_file.is_absolute() else self.data_dir / db_file

# ------------------------------------------------------------------
# Path detection: also catch "C:/..." and "C:\..." on Windows
# ------------------------------------------------------------------
ABS_WIN = re.compile(r"^[A-Za-z]:[\\/].*")   # e.g. C:\ or D:/

def _looks_like_path(val: str) -> bool:
    return val.startswith("/") or bool(ABS_WIN.match(val))

def _expand(val: str) -> str:
    "Expand ${VAR} and ~ consistently on every platform."
    return os.path.expanduser(os.path.expandvars(val))

def load_config(cfg_path: str | Path | None = None) -> FeedConfig:
    """
    Parse YAML then cast any top-level value that *looks* like an absolute
    path (Unix or Windows drive letter) into pathlib.Path.
    Environment variables are expanded beforehand.
    """
    cfg_path = Path(cfg_path or os.environ.get(ENV_VAR) or PROJECT_ROOT / "config.yaml")
    text = os.path.expandvars(cfg_path.read_text(encoding="utf-8"))
    cfg  = yaml.safe_load(text) or {}

    for k, v in cfg.items():
        if isinstance(v, str) and _looks_like_path(v):
            cfg[k] = Path(v)

    root = Path(_expand(str(cfg.pop("project_root", PROJECT_ROOT))))
    data_dir = Path(_expand(str(cfg.pop("data_dir", "data"))))
    if not data_dir.is_absolute():
        data_dir = root / data_dir

    return FeedConfig(
        project_root=root,
        data_dir=data_dir,
        ingest=cfg.get("ingest") or {},
        geocode=cfg.get("geocode") or {},
        store=cfg.get("store") or {},
    )

@lru_cache(maxsize=1)
def get_conf() -> FeedConfig:
    """Load the config once and materialise the data folder."""
    conf = load_config()
    conf.data_dir.mkdir(parents=True, exist_ok=True)
    return conf
