"""Pictora: AI image generation with asynchronous task tracking.

Pictora turns a module request (figurine, sketch-control, image-fusion, ...)
into a provider prompt, runs it against an image-capable chat model in the
background and reports progress until the images are ready:
- Per-module parameter building with quality tiers
- Primary / OpenRouter / placeholder providers with bounded retries
- Image URL extraction from free-form model replies
- SQLite-backed task store that survives restarts
- REST status polling and SSE push updates

Usage:
    # Server
    $ pictora serve

    # CLI client
    $ pictora generate figurine "a knight in silver armor"

    # Python API
    from pictora import GenerationClient, TaskPoller

    async with GenerationClient("http://localhost:8000") as client:
        accepted = await client.generate("standard", {"description": "red fox in snow"})
        state = await TaskPoller(client).poll(accepted["taskId"])
"""

try:
    from importlib.metadata import version as _get_version

    __version__ = _get_version("pictora")
except Exception:
    __version__ = "0.0.0-dev"


# Core exports (lazy imports for faster startup)
def __getattr__(name: str):
    """Lazy import for main classes."""
    if name == "GenerationCoordinator":
        from .generation.coordinator import GenerationCoordinator

        return GenerationCoordinator
    if name == "TaskStore":
        from .generation.store import TaskStore

        return TaskStore
    if name == "GenerationClient":
        from .client.api import GenerationClient

        return GenerationClient
    if name == "TaskPoller":
        from .client.poller import TaskPoller

        return TaskPoller
    if name == "create_app":
        from .web.app import create_app

        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "GenerationCoordinator",
    "TaskStore",
    "GenerationClient",
    "TaskPoller",
    "create_app",
]
