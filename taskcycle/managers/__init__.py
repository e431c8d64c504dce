"""Manager modules for taskcycle.

Managers resolve task ids through a TaskSource, apply configuration, and
delegate state machine logic to the engines. They never write; results are
applied by TaskStore.
"""

from .task_manager import TaskManager

__all__ = ["TaskManager"]
