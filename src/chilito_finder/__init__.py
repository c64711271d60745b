"""
chilito_finder
~~~~~~~~~~~~~~

Finds the nearest Taco Bell that still serves the Chili Cheese Burrito, using only public
web sources: cascading geocoding, cascading store discovery, distance ranking, store-number
scraping and menu-page verification with retries.
"""

__version__ = "0.1.0"

# -------------------------------------------------------------------
# Package-level logger
# -------------------------------------------------------------------
from .utils.logger     import logger, setup_logger

# -------------------------------------------------------------------
# Core search
# -------------------------------------------------------------------
from .core.errors      import ErrorKind, GeocodeError, LocateError, SearchCancelled
from .core.models      import POIRecord, SearchOutcome, VerificationResult
from .core.search      import ChilitoSearch
from .core.geocode     import GeocodeResolver
from .core.places      import POILocator
from .core.ranking     import rank
from .core.store_id    import IdentifierResolver, similar_addresses
from .core.menu        import ContentVerifier, IdentityRotator, OverrideTable, RetryPolicy, load_override_table

# -------------------------------------------------------------------
# Spatial
# -------------------------------------------------------------------
from .spatial.distance import GeoPoint, haversine_km

# -------------------------------------------------------------------
# Public API
# -------------------------------------------------------------------
__all__ = [
    # logging
    "logger",
    "setup_logger",
    # core
    "ChilitoSearch",
    "SearchOutcome",
    "POIRecord",
    "VerificationResult",
    "ErrorKind",
    "GeocodeError",
    "LocateError",
    "SearchCancelled",
    "GeocodeResolver",
    "POILocator",
    "rank",
    "IdentifierResolver",
    "similar_addresses",
    "ContentVerifier",
    "RetryPolicy",
    "IdentityRotator",
    "OverrideTable",
    "load_override_table",
    # spatial
    "GeoPoint",
    "haversine_km",
]
