"""Custom exceptions for the workflow engine."""


class EngineError(Exception):
    """Base exception for the workflow engine."""

    def __init__(self, message: str):
        """Initialize exception with message.

        Args:
            message: Exception message
        """
        self.message = message
        super().__init__(self.message)


class NotFoundError(EngineError):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class WorkflowNotFoundError(NotFoundError):
    """Raised when a workflow id is unknown to the repository."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class CheckpointNotFoundError(NotFoundError):
    """Raised when a suspended run has no stored checkpoint."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"No checkpoint stored for run: {run_id}")


class StepExecutionError(EngineError):
    """A step could not complete.

    Raised when an executor breaks its contract or a long wait cannot be
    scheduled for resumption. The run loop turns it into a failed run
    result.
    """


class ContextWriteError(EngineError):
    """Attempt to overwrite a key that is already present in the data context."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Data context key already written: {key}")


class CodeGenerationError(EngineError):
    """The text-generation model did not return usable code."""
