"""Generation task orchestration: parameters, providers, tasks and progress."""

from .archive import ImageArchive, ResultSink
from .config import GenerationConfig, ProviderSettings
from .coordinator import GenerationCoordinator
from .events import Event, EventType, TaskEventBus
from .extractor import extract_image_urls
from .models import GenerationParameters, GenerationResult, ModuleType, Task, TaskStatus
from .params import ParamBuilder, build_parameters
from .providers import ProviderAdapter, ProviderError, ProviderReply, select_provider
from .store import TaskStore

__all__ = [
    "Event",
    "EventType",
    "GenerationConfig",
    "GenerationCoordinator",
    "GenerationParameters",
    "GenerationResult",
    "ImageArchive",
    "ModuleType",
    "ParamBuilder",
    "ProviderAdapter",
    "ProviderError",
    "ProviderReply",
    "ProviderSettings",
    "ResultSink",
    "Task",
    "TaskEventBus",
    "TaskStatus",
    "TaskStore",
    "build_parameters",
    "extract_image_urls",
    "select_provider",
]
