"""Tests for typed step and workflow definitions."""

import pytest
from pydantic import ValidationError

from core.constants import CredentialType, StepKind
from workflow.models import (
    Credential,
    DatabaseQueryStep,
    PassThroughStep,
    WaitConfig,
    Workflow,
    parse_step,
    parse_steps,
)


@pytest.mark.unit
class TestStepParsing:

    def test_discriminated_by_kind(self):
        step = parse_step({"id": "d1", "kind": "database_query", "config": {"credentialId": "c1", "query": "SELECT 1"}})
        assert isinstance(step, DatabaseQueryStep)
        assert step.config.credential_id == "c1"

    @pytest.mark.parametrize("kind", ["custom_code", "api_request", "app_action", "parallel"])
    def test_pass_through_kinds_keep_config(self, kind):
        step = parse_step({"id": "x", "kind": kind, "config": {"anything": [1, 2]}})
        assert isinstance(step, PassThroughStep)
        assert step.config == {"anything": [1, 2]}

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            parse_step({"id": "x", "kind": "teleport"})

    def test_empty_id(self):
        with pytest.raises(ValidationError):
            parse_step({"id": "", "kind": "end"})

    def test_label_falls_back_to_id(self):
        assert parse_step({"id": "step-9", "kind": "end"}).label == "step-9"
        assert parse_step({"id": "step-9", "kind": "end", "title": "Stop"}).label == "Stop"


@pytest.mark.unit
class TestWaitConfig:

    def test_weekday_names_normalised(self):
        config = WaitConfig(office_hours_days=["Sunday", "mon", "SAT", "3"])
        assert config.office_hours_days == [0, 1, 6, 3]

    def test_weekday_out_of_range(self):
        with pytest.raises(ValidationError):
            WaitConfig(office_hours_days=[7])

    @pytest.mark.parametrize("value", ["9:00", "23:59", "00:00"])
    def test_valid_times(self, value):
        assert WaitConfig(office_hours_start=value).office_hours_start == value

    @pytest.mark.parametrize("value", ["24:00", "9am", "12:60"])
    def test_invalid_times(self, value):
        with pytest.raises(ValidationError):
            WaitConfig(office_hours_start=value)


@pytest.mark.unit
class TestWorkflow:

    def test_ordered_steps_put_trigger_first(self):
        workflow = Workflow(id="wf", name="W", steps=parse_steps([
            {"id": "a", "kind": "end"},
            {"id": "t", "kind": "trigger"},
        ]))
        assert [s.id for s in workflow.ordered_steps()] == ["t", "a"]
        assert workflow.trigger.id == "t"

    def test_branch_to_unknown_step(self):
        with pytest.raises(ValidationError, match="unknown step"):
            Workflow(id="wf", name="W", steps=parse_steps([
                {"id": "t", "kind": "trigger"},
                {"id": "c", "kind": "condition", "config": {"false_next_step_id": "nowhere"}},
            ]))

    def test_forward_branch_is_valid(self):
        workflow = Workflow(id="wf", name="W", steps=parse_steps([
            {"id": "t", "kind": "trigger"},
            {"id": "c", "kind": "filter", "config": {"true_next_step_id": "e"}},
            {"id": "e", "kind": "end"},
        ]))
        assert workflow.get_step("c").config.branch_target(True) == "e"
        assert workflow.get_step("missing") is None

    def test_draft_without_trigger_is_valid(self):
        workflow = Workflow(id="wf", name="Draft", steps=parse_steps([{"id": "a", "kind": "end"}]))
        assert workflow.trigger is None

    def test_step_kinds(self):
        workflow = Workflow(id="wf", name="W", steps=parse_steps([{"id": "t", "kind": "trigger"}]))
        assert StepKind(workflow.steps[0].kind) == StepKind.TRIGGER


@pytest.mark.unit
class TestCredential:

    def test_database_credential(self):
        credential = Credential.model_validate({
            "id": "c1",
            "appName": "PostgreSQL",
            "accountName": "prod",
            "type": "Database",
            "authData": {"connection_url": "postgresql+asyncpg://db/app"},
        })
        assert credential.type == CredentialType.DATABASE
        assert credential.connection_handle == "postgresql+asyncpg://db/app"

    def test_no_handle(self):
        assert Credential(id="c2", app_name="Slack").connection_handle is None
