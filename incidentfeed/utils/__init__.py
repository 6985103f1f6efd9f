"""
Expose the config loader so downstream code can do:

    from incidentfeed.utils import get_conf
"""
from .config import FeedConfig, get_conf, load_config

__all__ = ["FeedConfig", "get_conf", "load_config"]
