"""Task handlers that run duplications from the task queue."""

from morphoclone.tasks.handler import Handler
from morphoclone.tasks.partition_publish import PartitionPublishHandler
from morphoclone.tasks.project_duplication import ProjectDuplicationHandler

HANDLERS: dict[str, type[Handler]] = {
    handler.name: handler
    for handler in (
        PartitionPublishHandler,
        ProjectDuplicationHandler,
    )
}


def get_handler(name: str, **kwargs) -> Handler:
    """Instantiate the handler registered under ``name``."""
    if name not in HANDLERS:
        raise KeyError(f"No task handler named {name}")
    return HANDLERS[name](**kwargs)


__all__ = [
    "HANDLERS",
    "Handler",
    "PartitionPublishHandler",
    "ProjectDuplicationHandler",
    "get_handler",
]
