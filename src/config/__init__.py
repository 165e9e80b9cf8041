"""Configuration modules for the RickTea voice bot."""

from .settings import (
    BotSettings,
    load_settings,
    get_settings,
    reset_settings,
)
from .catalog import (
    Persona,
    Catalog,
    Catalogs,
    load_catalogs,
    get_catalogs,
)

__all__ = [
    'BotSettings',
    'load_settings',
    'get_settings',
    'reset_settings',
    'Persona',
    'Catalog',
    'Catalogs',
    'load_catalogs',
    'get_catalogs',
]
