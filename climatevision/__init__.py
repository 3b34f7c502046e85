"""
ClimateVision - see climate effects and solutions on your own nature photos.

Generates transformed images and short videos with hosted generative models,
and files EcoVoice environmental violation reports.
"""

__version__ = "0.1.0"

# Export key modules for external use
from .errors import (
    ClimateVisionError,
    ConfigurationError,
    GenerationTimeoutError,
    NoImageDataError,
    NoResultError,
    ProviderError,
    StorageError,
    ValidationError,
)
from .imagegen import GeneratedImage, generate_climate_effect
from .prompts import Category
from .videogen import GeneratedVideo, VideoClient

__all__ = [
    "Category",
    "ClimateVisionError",
    "ConfigurationError",
    "GeneratedImage",
    "GeneratedVideo",
    "GenerationTimeoutError",
    "NoImageDataError",
    "NoResultError",
    "ProviderError",
    "StorageError",
    "ValidationError",
    "VideoClient",
    "__version__",
    "generate_climate_effect",
]
