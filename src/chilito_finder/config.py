"""
Configuration module for the Chilito Finder.
-------------------------------------------

This module defines all of the tunable parameters, file paths, and environment-driven settings
used by the search pipeline. Values are read from the environment (and from a local `.env`
file when present) once, at import time.
"""

import os
from pathlib import Path
from typing import Dict, Any

from dotenv import load_dotenv

load_dotenv()


def _as_bool(val, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


# Base paths
CHILITO_HOME = Path(os.getenv('CHILITO_HOME', Path.home() / '.chilito'))
LOGS_DIR = CHILITO_HOME / 'logs'
LOG_TO_FILE = _as_bool(os.getenv('CHILITO_LOG_TO_FILE'), True)

# Search parameters
DEFAULT_RADIUS = int(os.getenv('DEFAULT_RADIUS', 100000))  # in meters
MAX_CANDIDATES = int(os.getenv('MAX_CANDIDATES', 5))  # closest stores whose menus are checked
CANDIDATE_DELAY = float(os.getenv('CANDIDATE_DELAY', 0))  # politeness pause between stores, seconds

# HTTP timeouts (seconds)
HTTP_TIMEOUT = float(os.getenv('HTTP_TIMEOUT', 20))
MENU_TIMEOUT = float(os.getenv('MENU_TIMEOUT', 30))
LOCATION_SEARCH_TIMEOUT = float(os.getenv('LOCATION_SEARCH_TIMEOUT', 15))
NOMINATIM_TIMEOUT = float(os.getenv('NOMINATIM_TIMEOUT', 10))
OVERPASS_TIMEOUT = float(os.getenv('OVERPASS_TIMEOUT', 15))

# Menu fetch retries
RETRY_ATTEMPTS = int(os.getenv('RETRY_ATTEMPTS', 3))
RETRY_BASE_DELAY = float(os.getenv('RETRY_BASE_DELAY', 1.0))  # doubled after every failed attempt
RETRY_JITTER = float(os.getenv('RETRY_JITTER', 1.0))  # upper bound of the random extra wait
URL_DELAY = float(os.getenv('URL_DELAY', 1.0))  # politeness pause between menu pages

# Third-party services
MAPBOX_TOKEN = os.getenv('MAPBOX_TOKEN')
NOMINATIM_USER_AGENT = os.getenv('NOMINATIM_USER_AGENT', 'ChilitoBurritoFinder/1.0')
OVERRIDES_PATH = os.getenv('CHILITO_OVERRIDES_PATH')

TACO_BELL_GEOCODE_URL = "https://api.tacobell.com/location/v1/{query}"
TACO_BELL_STORES_URL = "https://www.tacobell.com/tacobellwebservices/v4/tacobell/stores"
TACO_BELL_LOCATION_SEARCH_URL = "https://www.tacobell.com/locations/search"
MAPBOX_GEOCODE_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json"
NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
OVERPASS_URL = "https://overpass-api.de/api/interpreter"

MENU_URL_TEMPLATES = (
    "https://www.tacobell.com/food/menu?store={store_id}",
    "https://www.tacobell.com/food/burritos?store={store_id}",
    "https://www.tacobell.com/food/specialties?store={store_id}",
    "https://www.tacobell.com/food/specialty?store={store_id}",
)

# Names the Chili Cheese Burrito goes by on menu pages
MENU_KEYWORDS = (
    "chili cheese burrito",
    "chilito burrito",
    "chilito",
    "chili burrito",
)

# Stores known to carry the item even when the menu scrape misses it
DEFAULT_OVERRIDES_VERSION = "2024.1"
DEFAULT_OVERRIDES = {
    "018678": True,
}

if LOG_TO_FILE:
    LOGS_DIR.mkdir(parents=True, exist_ok=True)


def get_config() -> Dict[str, Any]:
    """
    Get the current configuration as a dictionary.
    Useful for logging and debugging.
    """
    return {
        'paths': {
            'chilito_home': str(CHILITO_HOME),
            'logs_dir': str(LOGS_DIR),
            'overrides_path': OVERRIDES_PATH
        },
        'search': {
            'default_radius': DEFAULT_RADIUS,
            'max_candidates': MAX_CANDIDATES,
            'candidate_delay': CANDIDATE_DELAY
        },
        'http': {
            'timeout': HTTP_TIMEOUT,
            'menu_timeout': MENU_TIMEOUT,
            'location_search_timeout': LOCATION_SEARCH_TIMEOUT,
            'nominatim_timeout': NOMINATIM_TIMEOUT,
            'overpass_timeout': OVERPASS_TIMEOUT
        },
        'retry': {
            'attempts': RETRY_ATTEMPTS,
            'base_delay': RETRY_BASE_DELAY,
            'jitter': RETRY_JITTER,
            'url_delay': URL_DELAY
        },
        'services': {
            'mapbox_configured': bool(MAPBOX_TOKEN),
            'nominatim_user_agent': NOMINATIM_USER_AGENT
        }
    }
