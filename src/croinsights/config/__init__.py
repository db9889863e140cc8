"""Configuration for the results workbench."""

from .loader import config_from_dict, load_config
from .schema import Config

__all__ = ["Config", "load_config", "config_from_dict"]
