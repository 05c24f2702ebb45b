from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from clipforge.config import runtime_config
from clipforge.video_timeline.models import AspectRatio, Timeline

logger = logging.getLogger(__name__)

Command = Callable[..., Timeline]


@dataclass
class TimelineProject:
    """Current snapshot of one project plus its undo and redo stacks."""

    id: str
    current: Timeline
    undo_stack: List[Timeline] = field(default_factory=list)
    redo_stack: List[Timeline] = field(default_factory=list)

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)


class TimelineRepository:
    def create_project(self, project: TimelineProject) -> TimelineProject:
        raise NotImplementedError

    def get_project(self, project_id: str) -> Optional[TimelineProject]:
        raise NotImplementedError

    def list_projects(self) -> List[TimelineProject]:
        raise NotImplementedError

    def update_project(self, project: TimelineProject) -> TimelineProject:
        raise NotImplementedError

    def delete_project(self, project_id: str) -> None:
        raise NotImplementedError


class InMemoryTimelineRepository(TimelineRepository):
    def __init__(self) -> None:
        self.projects: Dict[str, TimelineProject] = {}

    def create_project(self, project: TimelineProject) -> TimelineProject:
        self.projects[project.id] = project
        return project

    def get_project(self, project_id: str) -> Optional[TimelineProject]:
        return self.projects.get(project_id)

    def list_projects(self) -> List[TimelineProject]:
        return list(self.projects.values())

    def update_project(self, project: TimelineProject) -> TimelineProject:
        self.projects[project.id] = project
        return project

    def delete_project(self, project_id: str) -> None:
        self.projects.pop(project_id, None)


class TimelineService:
    """Applies commands to stored snapshots, one swap per action.

    Snapshots handed out by ``snapshot`` are immutable; later commands replace the
    stored snapshot and never touch one already given to a reader.
    """

    def __init__(self, repo: Optional[TimelineRepository] = None, history_limit: Optional[int] = None) -> None:
        self.repo = repo or InMemoryTimelineRepository()
        self.history_limit = history_limit or runtime_config.get_history_limit()
        self._lock = threading.Lock()

    def create_project(self, name: str = "Untitled", aspect_ratio: AspectRatio = "16:9") -> TimelineProject:
        project = TimelineProject(
            id=uuid.uuid4().hex,
            current=Timeline(project_name=name, aspect_ratio=aspect_ratio),
        )
        return self.repo.create_project(project)

    def get_project(self, project_id: str) -> Optional[TimelineProject]:
        return self.repo.get_project(project_id)

    def list_projects(self) -> List[TimelineProject]:
        return self.repo.list_projects()

    def delete_project(self, project_id: str) -> None:
        self.repo.delete_project(project_id)

    def snapshot(self, project_id: str) -> Optional[Timeline]:
        project = self.repo.get_project(project_id)
        return project.current if project else None

    def apply(self, project_id: str, command: Command, *args: Any, **kwargs: Any) -> Timeline:
        """Run ``command(current, *args, **kwargs)`` and store the result.

        Commands that return the snapshot unchanged leave the history alone.
        Raises KeyError for an unknown project.
        """
        with self._lock:
            project = self.repo.get_project(project_id)
            if project is None:
                raise KeyError(project_id)
            before = project.current
            after = command(before, *args, **kwargs)
            if after == before:
                return before
            project.undo_stack.append(before)
            del project.undo_stack[: -self.history_limit]
            project.redo_stack.clear()
            project.current = after
            self.repo.update_project(project)
            logger.debug("applied %s to project %s", getattr(command, "__name__", command), project_id)
            return after

    def undo(self, project_id: str) -> Timeline:
        with self._lock:
            project = self.repo.get_project(project_id)
            if project is None:
                raise KeyError(project_id)
            if project.undo_stack:
                project.redo_stack.append(project.current)
                project.current = project.undo_stack.pop()
                self.repo.update_project(project)
            return project.current

    def redo(self, project_id: str) -> Timeline:
        with self._lock:
            project = self.repo.get_project(project_id)
            if project is None:
                raise KeyError(project_id)
            if project.redo_stack:
                project.undo_stack.append(project.current)
                project.current = project.redo_stack.pop()
                self.repo.update_project(project)
            return project.current


_default_service: Optional[TimelineService] = None


def get_timeline_service() -> TimelineService:
    global _default_service
    if _default_service is None:
        _default_service = TimelineService()
    return _default_service


def set_timeline_service(service: Optional[TimelineService]) -> None:
    global _default_service
    _default_service = service
