"""poissonfields — generative collages of transparent images on a Poisson-spaced canvas."""

from dotenv import load_dotenv

load_dotenv()

from poissonfields.config import CollageConfig  # noqa: E402
from poissonfields.errors import (  # noqa: E402
    AcquisitionError,
    CollageError,
    InsufficientCandidatesError,
    PublishError,
    RenderError,
)
from poissonfields.models import CollageOutput, ImageAsset, SearchResult  # noqa: E402
from poissonfields.pipeline import Pipeline  # noqa: E402

__all__ = [
    "AcquisitionError",
    "CollageConfig",
    "CollageError",
    "CollageOutput",
    "ImageAsset",
    "InsufficientCandidatesError",
    "Pipeline",
    "PublishError",
    "RenderError",
    "SearchResult",
]
