"""Conversion between editor documents and typed workflow definitions.

The visual editor stores steps as ``WorkflowStepData`` documents: a
``type`` of ``trigger`` or ``action``, a display ``title`` ("Wait",
"Send Email", "Cron Job", ...) and a loosely shaped ``data`` blob. This
module is the only place where display titles are mapped to step kinds.

Example editor step::

    {
        "id": "step-2",
        "type": "action",
        "title": "Wait",
        "description": "Wait 2 hours",
        "data": {"waitMode": "duration", "waitDurationValue": 2, "waitDurationUnit": "hours"}
    }
"""

from typing import Any, Optional

import structlog

from core.constants import StepKind, TriggerSource
from workflow.models import Workflow, WorkflowStep, parse_step

logger = structlog.get_logger(__name__)

TRIGGER_TITLES = {
    "Webhook": TriggerSource.WEBHOOK,
    "Cron Job": TriggerSource.CRON,
    "Shopify": TriggerSource.SHOPIFY,
    "App Event": TriggerSource.APP_EVENT,
}

ACTION_TITLES = {
    "Condition": StepKind.CONDITION,
    "Filter": StepKind.FILTER,
    "Wait": StepKind.WAIT,
    "Send Email": StepKind.SEND_EMAIL,
    "Database Query": StepKind.DATABASE_QUERY,
    "Custom Code": StepKind.CUSTOM_CODE,
    "Custom AI Function": StepKind.CUSTOM_CODE,
    "API Request": StepKind.API_REQUEST,
    "App Action": StepKind.APP_ACTION,
    "Parallel": StepKind.PARALLEL,
    "End Automation": StepKind.END,
}

DEFAULT_TITLES = {
    StepKind.TRIGGER: "Webhook",
    StepKind.CONDITION: "Condition",
    StepKind.FILTER: "Filter",
    StepKind.WAIT: "Wait",
    StepKind.SEND_EMAIL: "Send Email",
    StepKind.DATABASE_QUERY: "Database Query",
    StepKind.CUSTOM_CODE: "Custom Code",
    StepKind.API_REQUEST: "API Request",
    StepKind.APP_ACTION: "App Action",
    StepKind.PARALLEL: "Parallel",
    StepKind.END: "End Automation",
}


def kind_for_title(step_type: str, title: str) -> StepKind:
    """Step kind for an editor step. Unknown action titles become app actions."""
    if step_type == "trigger" or title in TRIGGER_TITLES:
        return StepKind.TRIGGER
    kind = ACTION_TITLES.get(title)
    if kind is None:
        logger.warning("Unknown step title, treating as app action", title=title)
        return StepKind.APP_ACTION
    return kind


def title_for_kind(kind: StepKind, source: Optional[TriggerSource] = None) -> str:
    if kind == StepKind.TRIGGER and source is not None:
        for title, title_source in TRIGGER_TITLES.items():
            if title_source == source:
                return title
    return DEFAULT_TITLES[StepKind(kind)]


def _condition_config(data: dict) -> dict:
    cases = (data.get("conditionData") or {}).get("cases") or []
    default_next = (data.get("conditionData") or {}).get("defaultNextStepId")
    if not cases:
        return {"false_next_step_id": default_next}

    if len(cases) > 1:
        logger.warning("Condition has several cases, only the first one is kept", cases=len(cases))
    first = cases[0]
    return {
        "group": {
            "conditions": first.get("rules") or [],
            "logicalOperator": first.get("logicalOperator", "AND"),
        },
        "true_next_step_id": first.get("nextStepId"),
        "false_next_step_id": default_next,
    }


def _config_for(kind: StepKind, title: str, data: dict) -> dict:
    if kind == StepKind.TRIGGER:
        source = TRIGGER_TITLES.get(title, TriggerSource.MANUAL)
        return {**data, "source": source}
    if kind == StepKind.CONDITION:
        return _condition_config(data)
    if kind == StepKind.FILTER:
        return {"group": data.get("filterData") or {}}
    if kind == StepKind.WAIT:
        return {**data, "mode": data.get("waitMode") or "duration"}
    if kind == StepKind.SEND_EMAIL:
        return dict(data.get("emailData") or {})
    if kind == StepKind.DATABASE_QUERY:
        return dict(data.get("databaseQueryData") or {})
    return dict(data)


def step_from_editor(document: dict) -> WorkflowStep:
    """Build a typed step from an editor ``WorkflowStepData`` document."""
    title = document.get("title", "")
    kind = kind_for_title(document.get("type", "action"), title)
    data = document.get("data") or {}

    return parse_step({
        "id": document["id"],
        "kind": kind.value,
        "title": title,
        "description": document.get("description", ""),
        "config": _config_for(kind, title, data),
    })


def steps_from_editor(documents: list[dict]) -> list[WorkflowStep]:
    return [step_from_editor(d) for d in documents]


def workflow_from_editor(document: dict) -> Workflow:
    """Build a typed workflow from an editor workflow document."""
    return Workflow.model_validate({
        "id": document["id"],
        "name": document.get("name", ""),
        "description": document.get("description") or "",
        "status": str(document.get("status", "draft")).lower(),
        "steps": steps_from_editor(document.get("steps") or []),
        "version": document.get("version", 1),
        "history": [
            {
                "version": entry["version"],
                "date": entry["date"],
                "steps": steps_from_editor(entry.get("steps") or []),
            }
            for entry in document.get("history") or []
        ],
    })


def step_to_editor(step: WorkflowStep) -> dict[str, Any]:
    """Editor document for a typed step (title, type and data blob)."""
    kind = StepKind(step.kind)
    if kind == StepKind.TRIGGER:
        title = step.title or title_for_kind(kind, step.config.source)
    else:
        title = step.title or title_for_kind(kind)

    if isinstance(step.config, dict):
        data = dict(step.config)
    else:
        data = step.config.model_dump(mode="json", by_alias=True, exclude_none=True)

    if kind == StepKind.CONDITION:
        group = data.pop("group", {})
        data = {
            "conditionData": {
                "cases": [{
                    "id": f"{step.id}-case",
                    "name": "match",
                    "rules": group.get("conditions", []),
                    "logicalOperator": group.get("logicalOperator", "AND"),
                    "nextStepId": data.get("true_next_step_id"),
                }],
                "defaultNextStepId": data.get("false_next_step_id"),
            }
        }
    elif kind == StepKind.FILTER:
        data = {"filterData": data.get("group", {})}
    elif kind == StepKind.WAIT:
        data["waitMode"] = data.pop("mode", "duration")
    elif kind == StepKind.SEND_EMAIL:
        data = {"emailData": data}
    elif kind == StepKind.DATABASE_QUERY:
        data = {"databaseQueryData": data}

    return {
        "id": step.id,
        "type": "trigger" if kind == StepKind.TRIGGER else "action",
        "title": title,
        "description": step.description,
        "data": data,
    }
