"""Tests for the email and query transports."""

import smtplib

import pytest

from app.config import Settings
from integrations.database_transport import (
    SimulatedQueryTransport,
    SqlAlchemyQueryTransport,
    get_query_transport,
)
from integrations.email_transport import (
    EmailMessage,
    SimulatedEmailTransport,
    SmtpEmailTransport,
    get_email_transport,
)


def message(**overrides) -> EmailMessage:
    fields = {"to": "ada@example.com", "from_address": "team@pulse.test", "subject": "Hi", "body": "Hello"}
    fields.update(overrides)
    return EmailMessage(**fields)


class FakeSMTP:
    """Records what smtplib.SMTP would have sent."""

    instances: list["FakeSMTP"] = []

    def __init__(self, host, port):
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def sendmail(self, sender, recipients, body):
        self.sent.append((sender, recipients, body))


@pytest.mark.unit
class TestEmailTransports:

    async def test_simulated(self):
        transport = SimulatedEmailTransport()
        result = await transport.send(message())
        assert result["success"] is True
        assert result["messageId"].startswith("mock-message-")
        assert transport.sent[0].subject == "Hi"

    async def test_smtp_send(self, monkeypatch):
        FakeSMTP.instances = []
        monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
        transport = SmtpEmailTransport({"smtp_host": "mail.test", "smtp_port": 2525, "smtp_user": "u", "smtp_password": "p"})

        result = await transport.send(message(to="a@example.com, b@example.com", body="<b>Hello</b>"))

        assert result["success"] is True
        assert result["messageId"].endswith("@pulse.test>")
        server = FakeSMTP.instances[0]
        assert (server.host, server.port) == ("mail.test", 2525)
        assert server.started_tls is True
        assert server.logged_in == ("u", "p")
        sender, recipients, body = server.sent[0]
        assert sender == "team@pulse.test"
        assert recipients == ["a@example.com", "b@example.com"]
        assert "text/html" in body

    async def test_smtp_failure_is_reported(self, monkeypatch):
        def refuse(host, port):
            raise ConnectionRefusedError("connection refused")

        monkeypatch.setattr(smtplib, "SMTP", refuse)
        result = await SmtpEmailTransport({}).send(message())

        assert result["success"] is False
        assert result["messageId"] == ""
        assert "refused" in result["error"]

    def test_selection(self):
        assert isinstance(get_email_transport(Settings(EMAIL_TRANSPORT="smtp")), SmtpEmailTransport)
        assert isinstance(get_email_transport(Settings(EMAIL_TRANSPORT="simulated")), SimulatedEmailTransport)


@pytest.mark.integration
class TestSqlAlchemyQueryTransport:

    @pytest.fixture
    async def database_url(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}"
        transport = SqlAlchemyQueryTransport()
        await transport.execute(url, "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT)")
        await transport.execute(url, "INSERT INTO users (name, email) VALUES ('Alice', 'alice@example.com')")
        await transport.execute(url, "INSERT INTO users (name, email) VALUES ('Bob', 'bob@example.com')")
        await transport.close()
        return url

    async def test_select_rows(self, database_url):
        transport = SqlAlchemyQueryTransport()
        try:
            result = await transport.execute(database_url, "SELECT id, name, email FROM users ORDER BY id")
        finally:
            await transport.close()

        assert result == {
            "success": True,
            "rows": [
                {"id": 1, "name": "Alice", "email": "alice@example.com"},
                {"id": 2, "name": "Bob", "email": "bob@example.com"},
            ],
        }

    async def test_max_rows(self, database_url):
        transport = SqlAlchemyQueryTransport(max_rows=1)
        try:
            result = await transport.execute(database_url, "SELECT name FROM users ORDER BY id")
        finally:
            await transport.close()
        assert result["rows"] == [{"name": "Alice"}]

    async def test_statement_without_rows(self, database_url):
        transport = SqlAlchemyQueryTransport()
        try:
            result = await transport.execute(database_url, "UPDATE users SET name = 'Bobby' WHERE id = 2")
        finally:
            await transport.close()
        assert result == {"success": True, "rows": []}

    async def test_query_error_is_reported(self, database_url):
        transport = SqlAlchemyQueryTransport()
        try:
            result = await transport.execute(database_url, "SELECT * FROM missing_table")
        finally:
            await transport.close()
        assert result["success"] is False
        assert result["rows"] == []
        assert "missing_table" in result["error"]

    async def test_missing_connection_url(self):
        result = await SqlAlchemyQueryTransport().execute(None, "SELECT 1")
        assert result == {"success": False, "rows": [], "error": "credential has no connection url"}

    async def test_database_step_end_to_end(self, database_url, services, make_workflow, webhook_trigger, credential_store):
        from workflow.engine import WorkflowEngine
        from workflow.models import Credential

        credential_store.add(Credential(id="cred-shop", app_name="SQLite", type="database", auth_data={"url": database_url}))
        services.queries = SqlAlchemyQueryTransport()
        workflow = make_workflow([
            webhook_trigger,
            {"id": "step-2", "kind": "database_query", "config": {
                "credential_id": "cred-shop",
                "query": "SELECT email FROM users WHERE name = '{{trigger.name}}'",
            }},
        ])

        try:
            result = await WorkflowEngine(services=services).run(workflow, {"name": "Bob"})
        finally:
            await services.queries.close()

        assert result.final_context["step-2"] == {"success": True, "rows": [{"email": "bob@example.com"}]}


@pytest.mark.unit
def test_query_transport_selection():
    assert isinstance(get_query_transport(Settings(QUERY_TRANSPORT="sqlalchemy")), SqlAlchemyQueryTransport)
    assert isinstance(get_query_transport(Settings(QUERY_TRANSPORT="simulated")), SimulatedQueryTransport)
