"""Shared pytest fixtures for the workflow engine test suite.

Provides:
- Settings overrides (simulated transports, UTC, no API key)
- A fixed clock (Saturday 2024-06-01 10:00 UTC)
- In-memory credential store with a database credential
- Simulated email and query transports for inspection
- An engine whose waits are recorded instead of slept
- A workflow factory
"""

import os
from datetime import datetime, timezone

import pytest

# Override settings BEFORE any app imports
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("WORKFLOW_TIMEZONE", "UTC")
os.environ.setdefault("EMAIL_TRANSPORT", "simulated")
os.environ.setdefault("QUERY_TRANSPORT", "simulated")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["CLAUDE_RETRY_DELAY"] = "0"

from core.constants import CredentialType  # noqa: E402
from integrations.database_transport import SimulatedQueryTransport  # noqa: E402
from integrations.email_transport import SimulatedEmailTransport  # noqa: E402
from services.credential_store import InMemoryCredentialStore  # noqa: E402
from steps.base_step import ExecutionServices  # noqa: E402
from workflow.engine import WorkflowEngine  # noqa: E402
from workflow.models import Credential, Workflow  # noqa: E402
from workflow.suspension import InlineSuspender  # noqa: E402

# Saturday
FIXED_NOW = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers the requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def email_transport() -> SimulatedEmailTransport:
    return SimulatedEmailTransport()


@pytest.fixture
def query_transport() -> SimulatedQueryTransport:
    return SimulatedQueryTransport()


@pytest.fixture
def db_credential() -> Credential:
    return Credential(
        id="cred-db",
        app_name="PostgreSQL",
        account_name="analytics",
        type=CredentialType.DATABASE,
        auth_data={"url": "sqlite+aiosqlite:///unused.db"},
    )


@pytest.fixture
def credential_store(db_credential) -> InMemoryCredentialStore:
    return InMemoryCredentialStore([db_credential])


@pytest.fixture
def services(credential_store, email_transport, query_transport, fixed_now) -> ExecutionServices:
    return ExecutionServices(
        credentials=credential_store,
        email=email_transport,
        queries=query_transport,
        clock=lambda: fixed_now,
        default_sender="noreply@pulse.test",
    )


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def engine(services, recording_sleep) -> WorkflowEngine:
    return WorkflowEngine(services=services, suspender=InlineSuspender(sleep=recording_sleep))


@pytest.fixture
def make_workflow():
    """Build a validated workflow from step dicts."""

    def _make(steps: list[dict], workflow_id: str = "wf_test", name: str = "Test workflow") -> Workflow:
        return Workflow.model_validate({"id": workflow_id, "name": name, "steps": steps})

    return _make


@pytest.fixture
def webhook_trigger() -> dict:
    return {"id": "step-1", "kind": "trigger", "title": "Webhook", "config": {"source": "webhook"}}
