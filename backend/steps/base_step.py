"""
Base interface for workflow step executors.

Every executable step kind (condition, wait, send email, ...) has an
executor that inherits from BaseStepExecutor and implements execute().
Executors read the data context and their step's typed configuration
and return a StepOutcome; the engine owns the context and merges the
outcome into it.

Configuration problems are reported in the outcome's output. Exceptions
raised from execute() fail the whole run.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional
from zoneinfo import ZoneInfo

from app.config import get_settings
from integrations.database_transport import QueryTransport, get_query_transport
from integrations.email_transport import EmailTransport, get_email_transport
from services.credential_store import CredentialStore, InMemoryCredentialStore


@dataclass
class StepOutcome:
    """What a step produced and how the run should continue.

    Attributes:
        output: Value stored under the step id (skipped when None)
        suspend_ms: Milliseconds the run must wait before the next step
        next_step_id: Forward jump target, None to advance linearly
        halt: Stop the run successfully after this step
    """

    output: Any = None
    suspend_ms: int = 0
    next_step_id: Optional[str] = None
    halt: bool = False


def workflow_clock(tz_name: str) -> Callable[[], datetime]:
    """Clock returning aware "now" in the given IANA timezone."""
    tz = ZoneInfo(tz_name)
    return lambda: datetime.now(tz)


@dataclass
class ExecutionServices:
    """Collaborators injected into every step executor.

    Credentials and transports are read-only lookups from the point of
    view of a run.
    """

    credentials: CredentialStore = field(default_factory=InMemoryCredentialStore)
    email: Optional[EmailTransport] = None
    queries: Optional[QueryTransport] = None
    clock: Optional[Callable[[], datetime]] = None
    default_sender: str = ""

    def __post_init__(self):
        settings = get_settings()
        if self.email is None:
            self.email = get_email_transport(settings)
        if self.queries is None:
            self.queries = get_query_transport(settings)
        if self.clock is None:
            self.clock = workflow_clock(settings.WORKFLOW_TIMEZONE)
        if not self.default_sender:
            self.default_sender = settings.EMAIL_DEFAULT_FROM


class BaseStepExecutor(ABC):
    """
    Abstract base class for step executors.

    Subclasses must implement:
    - execute(step, context, services) -> StepOutcome
    - kinds (class property): step kinds handled by the executor
    - display_name (class property)
    """

    kinds: tuple = ()
    display_name: str = "Base Step"
    description: str = "Abstract base step"
    config_model: Optional[type] = None

    @abstractmethod
    async def execute(
        self,
        step: Any,
        context: Mapping[str, Any],
        services: ExecutionServices,
    ) -> StepOutcome:
        """
        Execute one step.

        Args:
            step: Typed step definition (its config is already validated)
            context: Read-only view of the run's data context
            services: Injected collaborators

        Returns:
            StepOutcome describing output, suspension and next step
        """

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        """JSON schema of the step configuration."""
        if cls.config_model is None:
            return {"type": "object", "properties": {}}
        return cls.config_model.model_json_schema(by_alias=False)
