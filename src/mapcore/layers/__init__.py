"""Layer loading pipeline: descriptors in, a registry of renderable layers out.

Formats: GeoJSON (RFC 7946), GPX 1.1 and generic JSON records.
"""

from mapcore.layers.clustering import ClusterGroup, ClusteringResolver, SharedClusterPool
from mapcore.layers.layer import (
    ClusteringDecision,
    LayerDescriptor,
    LayerRuntimeRecord,
    LoadResult,
    LoadState,
    NormalizedPOI,
    SourceType,
    StyleRecord,
    ValidationResult,
)
from mapcore.layers.loader import LayerLoader
from mapcore.layers.profile import ProfileLoader
from mapcore.layers.registry import LayerRegistry, RegistryView
from mapcore.layers.styles import StyleLoader

__all__ = [
    "ClusterGroup",
    "ClusteringDecision",
    "ClusteringResolver",
    "LayerDescriptor",
    "LayerLoader",
    "LayerRegistry",
    "LayerRuntimeRecord",
    "LoadResult",
    "LoadState",
    "NormalizedPOI",
    "ProfileLoader",
    "RegistryView",
    "SharedClusterPool",
    "SourceType",
    "StyleLoader",
    "StyleRecord",
    "ValidationResult",
]
