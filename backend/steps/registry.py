"""
Step Executor Registry — maps step kinds to their executors.

Kinds without an executor (custom code, API request, app action,
parallel) are not registered; the engine records a placeholder for them.
"""

from typing import Dict, Optional, Type

from core.constants import StepKind
from steps.base_step import BaseStepExecutor
from steps.implementations.condition_step import CONDITION_STEP_TYPES
from steps.implementations.database_step import DATABASE_STEP_TYPES
from steps.implementations.email_step import EMAIL_STEP_TYPES
from steps.implementations.end_step import END_STEP_TYPES
from steps.implementations.wait_step import WAIT_STEP_TYPES


class StepRegistry:
    """Central registry of step executors, keyed by step kind."""

    def __init__(self):
        self._executors: Dict[StepKind, Type[BaseStepExecutor]] = {}
        self._register_builtin_steps()

    def _register_builtin_steps(self):
        for group in (
            CONDITION_STEP_TYPES,
            WAIT_STEP_TYPES,
            EMAIL_STEP_TYPES,
            DATABASE_STEP_TYPES,
            END_STEP_TYPES,
        ):
            for kind, executor_class in group.items():
                self.register(kind, executor_class)

    def register(self, kind: StepKind, executor_class: Type[BaseStepExecutor]):
        """Register (or replace) the executor for a step kind."""
        self._executors[StepKind(kind)] = executor_class

    def get(self, kind: StepKind) -> Optional[Type[BaseStepExecutor]]:
        return self._executors.get(StepKind(kind))

    def create_instance(self, kind: StepKind) -> Optional[BaseStepExecutor]:
        """Create an executor for a kind, None when the kind is not executable."""
        executor_class = self.get(kind)
        if executor_class:
            return executor_class()
        return None

    def list_all(self) -> list:
        """List registered step kinds with metadata."""
        return [
            {
                "kind": kind.value,
                "display_name": cls.display_name,
                "description": cls.description,
                "config_schema": cls.get_config_schema(),
            }
            for kind, cls in self._executors.items()
        ]

    @property
    def available_kinds(self) -> list:
        return list(self._executors.keys())


# Singleton
_registry: Optional[StepRegistry] = None


def get_step_registry() -> StepRegistry:
    """Get or create the singleton step registry."""
    global _registry
    if _registry is None:
        _registry = StepRegistry()
    return _registry
