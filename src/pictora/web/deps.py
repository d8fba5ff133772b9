"""FastAPI dependency injection."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from ..generation import GenerationCoordinator, ImageArchive, TaskEventBus, TaskStore


def _get_store(request: Request) -> TaskStore:
    return request.app.state.store


def _get_coordinator(request: Request) -> GenerationCoordinator:
    return request.app.state.coordinator


def _get_events(request: Request) -> TaskEventBus:
    return request.app.state.events


def _get_archive(request: Request) -> ImageArchive | None:
    return request.app.state.archive


Store = Annotated[TaskStore, Depends(_get_store)]
Coordinator = Annotated[GenerationCoordinator, Depends(_get_coordinator)]
Events = Annotated[TaskEventBus, Depends(_get_events)]
Archive = Annotated[ImageArchive | None, Depends(_get_archive)]
