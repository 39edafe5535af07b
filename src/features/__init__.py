"""
Feature extractors registry and factory.
"""

from .base import FeatureExtractor, FeatureMatrix
from .tsmeasures import TSMeasuresExtractor

# Registry of available extractors
EXTRACTOR_REGISTRY = {
    "tsmeasures": TSMeasuresExtractor,
}


def get_extractor(name: str, config: dict | None = None) -> FeatureExtractor:
    """Factory to create a feature extractor

    Args:
        name: Name of the extractor (e.g., 'tsmeasures')
        config: Configuration dict for the extractor

    Returns:
        Instance of the feature extractor

    Raises:
        ValueError: If name is not registered
    """
    if name not in EXTRACTOR_REGISTRY:
        available = ", ".join(EXTRACTOR_REGISTRY.keys())
        raise ValueError(f"Unknown extractor '{name}'. Available extractors: {available}")

    extractor_class = EXTRACTOR_REGISTRY[name]
    return extractor_class(config or {})


def list_extractors() -> list[str]:
    """List all available feature extractors"""
    return list(EXTRACTOR_REGISTRY.keys())


__all__ = [
    "FeatureExtractor",
    "FeatureMatrix",
    "TSMeasuresExtractor",
    "get_extractor",
    "list_extractors",
]
