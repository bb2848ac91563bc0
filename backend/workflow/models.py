"""Typed workflow definitions.

A workflow is an ordered list of steps. Each step is a tagged variant
discriminated by ``kind``; every kind carries its own configuration
model so a definition is validated once, when it is loaded, instead of
being probed field by field while it runs.

Example definition::

    {
        "id": "wf_1",
        "name": "Onboarding",
        "steps": [
            {"id": "step-1", "kind": "trigger", "title": "Webhook",
             "config": {"source": "webhook"}},
            {"id": "step-2", "kind": "wait", "title": "Wait",
             "config": {"mode": "duration", "duration_value": 2, "duration_unit": "hours"}},
            {"id": "step-3", "kind": "send_email", "title": "Send Email",
             "config": {"to": "{{trigger.body.email}}", "subject": "Welcome"}}
        ]
    }
"""

import re
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

from core.constants import (
    WEEKDAY_NAMES,
    ConditionOperator,
    CredentialType,
    DurationUnit,
    LogicalOperator,
    OfficeHoursAction,
    ScheduleMode,
    StepKind,
    TriggerSource,
    WaitMode,
    WorkflowStatus,
)

_HHMM = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def _normalize_weekdays(value: Any) -> Any:
    """Accept weekday names (``mon``) or indices (1) and return indices, Sunday=0."""
    if not isinstance(value, (list, tuple)):
        return value
    days = []
    for day in value:
        if isinstance(day, str) and day.lower()[:3] in WEEKDAY_NAMES:
            days.append(WEEKDAY_NAMES.index(day.lower()[:3]))
        elif isinstance(day, str) and day.isdigit():
            days.append(int(day))
        else:
            days.append(day)
    return days


def _check_weekday_range(days: list[int]) -> list[int]:
    if any(d < 0 or d > 6 for d in days):
        raise ValueError("Weekday indices must be between 0 (Sunday) and 6 (Saturday)")
    return days


def _check_time_of_day(value: str) -> str:
    if not _HHMM.match(value):
        raise ValueError(f"Invalid time format {value!r}, expected HH:mm")
    return value


Weekdays = Annotated[
    list[int], BeforeValidator(_normalize_weekdays), AfterValidator(_check_weekday_range)
]
TimeOfDay = Annotated[str, AfterValidator(_check_time_of_day)]


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ─── Trigger ──────────────────────────────────────────────────

class TriggerEvent(_ConfigModel):
    """A captured trigger event (e.g. a received webhook request)."""

    id: str
    received_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(), alias="receivedAt"
    )
    method: str = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None


class TriggerConfig(_ConfigModel):
    source: TriggerSource = TriggerSource.MANUAL
    webhook_url: Optional[str] = Field(default=None, alias="webhookUrl")
    events: list[TriggerEvent] = Field(default_factory=list)
    selected_event_id: Optional[str] = Field(default=None, alias="selectedEventId")

    # Cron-job triggers
    schedule_mode: Optional[ScheduleMode] = Field(default=None, alias="scheduleMode")
    cron_string: Optional[str] = Field(default=None, alias="cronString")
    interval_value: Optional[int] = Field(default=None, ge=1, alias="scheduleIntervalValue")
    interval_unit: DurationUnit = Field(default=DurationUnit.MINUTES, alias="scheduleIntervalUnit")
    schedule_time: Optional[TimeOfDay] = Field(default=None, alias="scheduleTime")
    weekly_days: Optional[Weekdays] = Field(default=None, alias="scheduleWeeklyDays")
    monthly_dates: Optional[list[int]] = Field(default=None, alias="scheduleMonthlyDates")

    def selected_event(self) -> Optional[TriggerEvent]:
        """The event chosen as the run payload, if any."""
        if not self.selected_event_id:
            return None
        for event in self.events:
            if event.id == self.selected_event_id:
                return event
        return None


# ─── Condition / Filter ───────────────────────────────────────

class Condition(_ConfigModel):
    """One comparison rule against a dot path in the data context."""

    id: str = ""
    variable: str
    # Unknown operators are kept as plain strings and evaluate to False
    operator: Union[ConditionOperator, str]
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, value: Any) -> str:
        return "" if value is None else str(value)


class ConditionGroup(_ConfigModel):
    conditions: list[Condition] = Field(default_factory=list)
    logical_operator: LogicalOperator = Field(default=LogicalOperator.AND, alias="logicalOperator")


class ConditionConfig(_ConfigModel):
    group: ConditionGroup = Field(default_factory=ConditionGroup)
    true_next_step_id: Optional[str] = None
    false_next_step_id: Optional[str] = None

    def branch_target(self, match: bool) -> Optional[str]:
        return self.true_next_step_id if match else self.false_next_step_id


# ─── Wait ─────────────────────────────────────────────────────

class WaitConfig(_ConfigModel):
    """How long a wait step suspends the run."""

    mode: WaitMode = WaitMode.DURATION
    duration_value: Optional[float] = Field(default=None, alias="waitDurationValue")
    duration_unit: Optional[DurationUnit] = Field(default=None, alias="waitDurationUnit")
    target_datetime: Optional[str] = Field(default=None, alias="waitDateTime")
    office_hours_days: Optional[Weekdays] = Field(default=None, alias="waitOfficeHoursDays")
    office_hours_start: Optional[TimeOfDay] = Field(default=None, alias="waitOfficeHoursStartTime")
    office_hours_end: Optional[TimeOfDay] = Field(default=None, alias="waitOfficeHoursEndTime")
    office_hours_action: Optional[OfficeHoursAction] = Field(default=None, alias="waitOfficeHoursAction")
    timestamp: Optional[str] = Field(default=None, alias="waitTimestamp")
    specific_days: Optional[Weekdays] = Field(default=None, alias="waitSpecificDays")
    specific_time: Optional[TimeOfDay] = Field(default=None, alias="waitSpecificTime")


# ─── Actions ──────────────────────────────────────────────────

class SendEmailConfig(_ConfigModel):
    to: str = ""
    from_address: str = Field(default="", alias="from")
    subject: str = ""
    body: str = ""


class DatabaseQueryConfig(_ConfigModel):
    credential_id: str = Field(default="", alias="credentialId")
    query: str = ""


# ─── Steps ────────────────────────────────────────────────────

class _StepBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    title: str = ""
    description: str = ""

    @property
    def label(self) -> str:
        return self.title or self.id


class TriggerStep(_StepBase):
    kind: Literal["trigger"] = "trigger"
    config: TriggerConfig = Field(default_factory=TriggerConfig)


class ConditionStep(_StepBase):
    """Condition and Filter steps share one shape and one evaluator."""

    kind: Literal["condition", "filter"] = "condition"
    config: ConditionConfig = Field(default_factory=ConditionConfig)


class WaitStep(_StepBase):
    kind: Literal["wait"] = "wait"
    config: WaitConfig = Field(default_factory=WaitConfig)


class SendEmailStep(_StepBase):
    kind: Literal["send_email"] = "send_email"
    config: SendEmailConfig = Field(default_factory=SendEmailConfig)


class DatabaseQueryStep(_StepBase):
    kind: Literal["database_query"] = "database_query"
    config: DatabaseQueryConfig = Field(default_factory=DatabaseQueryConfig)


class EndStep(_StepBase):
    kind: Literal["end"] = "end"
    config: dict[str, Any] = Field(default_factory=dict)


class PassThroughStep(_StepBase):
    """Steps whose configuration is kept as data but which the engine does not execute."""

    kind: Literal["custom_code", "api_request", "app_action", "parallel"]
    config: dict[str, Any] = Field(default_factory=dict)


WorkflowStep = Annotated[
    Union[
        TriggerStep,
        ConditionStep,
        WaitStep,
        SendEmailStep,
        DatabaseQueryStep,
        EndStep,
        PassThroughStep,
    ],
    Field(discriminator="kind"),
]

_step_adapter = TypeAdapter(WorkflowStep)
_steps_adapter = TypeAdapter(list[WorkflowStep])


def parse_step(data: dict) -> WorkflowStep:
    """Validate a single step definition."""
    return _step_adapter.validate_python(data)


def parse_steps(data: list) -> list[WorkflowStep]:
    return _steps_adapter.validate_python(data)


def evaluation_order(steps: list[WorkflowStep]) -> list[WorkflowStep]:
    """Trigger first, then every other step in list order."""
    triggers = [s for s in steps if s.kind == StepKind.TRIGGER]
    return triggers + [s for s in steps if s.kind != StepKind.TRIGGER]


# ─── Workflow ─────────────────────────────────────────────────

class WorkflowVersion(BaseModel):
    version: int
    date: str
    steps: list[WorkflowStep] = Field(default_factory=list)


class Workflow(BaseModel):
    """A workflow definition.

    Structural rules checked on construction:
    - step ids are unique
    - at most one trigger step
    - condition branch targets exist and come later in evaluation order
    """

    id: str
    name: str
    description: str = ""
    status: WorkflowStatus = WorkflowStatus.DRAFT
    steps: list[WorkflowStep] = Field(default_factory=list)
    version: int = 1
    history: list[WorkflowVersion] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_structure(self) -> "Workflow":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            seen.add(step.id)

        triggers = [s for s in self.steps if s.kind == StepKind.TRIGGER]
        if len(triggers) > 1:
            raise ValueError(
                f"A workflow has at most one trigger step, found {len(triggers)}"
            )

        ordered = evaluation_order(self.steps)
        positions = {step.id: index for index, step in enumerate(ordered)}
        for step in ordered:
            if not isinstance(step, ConditionStep):
                continue
            for target in (step.config.true_next_step_id, step.config.false_next_step_id):
                if target is None:
                    continue
                if target not in positions:
                    raise ValueError(f"Step {step.id} branches to unknown step {target}")
                if positions[target] <= positions[step.id]:
                    raise ValueError(
                        f"Step {step.id} branches backwards to {target}; "
                        "branch targets must come later in the workflow"
                    )
        return self

    @property
    def trigger(self) -> Optional[TriggerStep]:
        for step in self.steps:
            if isinstance(step, TriggerStep):
                return step
        return None

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def ordered_steps(self) -> list[WorkflowStep]:
        return evaluation_order(self.steps)


# ─── Credentials ──────────────────────────────────────────────

class Credential(BaseModel):
    """Stored connection secret for an external app or database.

    For database credentials ``auth_data["url"]`` holds the connection URL.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    app_name: str = Field(alias="appName")
    account_name: str = Field(default="", alias="accountName")
    type: CredentialType = CredentialType.API_KEY
    auth_data: dict[str, Any] = Field(default_factory=dict, alias="authData")

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @property
    def connection_handle(self) -> Optional[str]:
        return self.auth_data.get("url") or self.auth_data.get("connection_url")
