"""Client for the Pictora generation API."""

from .api import ApiError, GenerationClient
from .images import ImageEncodingError, encode_reference_image
from .poller import PollError, PollState, TaskPoller

__all__ = [
    "ApiError",
    "GenerationClient",
    "ImageEncodingError",
    "PollError",
    "PollState",
    "TaskPoller",
    "encode_reference_image",
]
