"""Constants and enums for the workflow engine."""

from enum import Enum


class StepKind(str, Enum):
    """Kind of a workflow step."""

    TRIGGER = "trigger"
    CONDITION = "condition"
    FILTER = "filter"
    WAIT = "wait"
    SEND_EMAIL = "send_email"
    DATABASE_QUERY = "database_query"
    CUSTOM_CODE = "custom_code"
    API_REQUEST = "api_request"
    APP_ACTION = "app_action"
    PARALLEL = "parallel"
    END = "end"


class TriggerSource(str, Enum):
    """What fires a trigger step."""

    WEBHOOK = "webhook"
    CRON = "cron"
    SHOPIFY = "shopify"
    APP_EVENT = "app_event"
    MANUAL = "manual"


class ConditionOperator(str, Enum):
    """Comparison operator of a single condition."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class WaitMode(str, Enum):
    """Strategy used by a wait step to compute its delay."""

    DURATION = "duration"
    DATETIME = "datetime"
    OFFICE_HOURS = "office_hours"
    TIMESTAMP = "timestamp"
    SPECIFIC_DAY = "specific_day"


class DurationUnit(str, Enum):
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


class OfficeHoursAction(str, Enum):
    WAIT = "wait"
    PROCEED = "proceed"


class ScheduleMode(str, Enum):
    """Recurrence mode of a cron-job trigger."""

    CRON = "cron"
    INTERVAL = "interval"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RunStatus(str, Enum):
    """Terminal status of a workflow run."""

    COMPLETED = "completed"
    FAILED = "failed"
    SUSPENDED = "suspended"


class StepStatus(str, Enum):
    """Status of a single step inside a run journal."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_IMPLEMENTED = "not_implemented"


class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class CredentialType(str, Enum):
    """Type of credential."""

    API_KEY = "api_key"
    OAUTH2 = "oauth2"
    BASIC_AUTH = "basic_auth"
    DATABASE = "database"
    CUSTOM = "custom"


# Sunday=0 .. Saturday=6, the weekday numbering used by the editor
WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

DURATION_UNIT_MS = {
    DurationUnit.MINUTES: 60_000,
    DurationUnit.HOURS: 3_600_000,
    DurationUnit.DAYS: 86_400_000,
}

MAX_TRIGGER_EVENTS = 10
