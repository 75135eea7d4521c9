"""
Intelligence Package.

Everything that knows about the map site's pages: selector-based listing
extraction, map rescope strategies, and listing classification.
"""

from .classification import (
    ClassificationTables,
    ListingClassifier,
    WebsiteClassification,
    load_classification,
)
from .page_reader import (
    MapsPageReader,
    parse_listing_html,
)
from .rescope import (
    CacheBustReloadStrategy,
    DragMapStrategy,
    RescopeChain,
    RescopeStrategy,
    SearchThisAreaStrategy,
    ZoomOutInStrategy,
)

__all__ = [
    # Classification
    "ClassificationTables",
    "ListingClassifier",
    "WebsiteClassification",
    "load_classification",
    # Page reader
    "MapsPageReader",
    "parse_listing_html",
    # Rescope
    "CacheBustReloadStrategy",
    "DragMapStrategy",
    "RescopeChain",
    "RescopeStrategy",
    "SearchThisAreaStrategy",
    "ZoomOutInStrategy",
]
