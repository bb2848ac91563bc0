"""Send Email step executor."""

from typing import Any, Mapping

import structlog

from core.constants import StepKind
from integrations.email_transport import EmailMessage
from steps.base_step import BaseStepExecutor, ExecutionServices, StepOutcome
from workflow.models import SendEmailConfig, SendEmailStep
from workflow.resolver import find_placeholders, substitute

logger = structlog.get_logger(__name__)


class SendEmailStepExecutor(BaseStepExecutor):
    """Compose an email from templates and send it through the email transport.

    Config:
        to: Recipient address, may contain {{placeholders}}
        from: Sender address (falls back to EMAIL_DEFAULT_FROM)
        subject: Subject template
        body: Body template (plain text or HTML)
    """

    kinds = (StepKind.SEND_EMAIL,)
    display_name = "Send Email"
    description = "Send an email built from workflow data"
    config_model = SendEmailConfig

    async def execute(
        self,
        step: SendEmailStep,
        context: Mapping[str, Any],
        services: ExecutionServices,
    ) -> StepOutcome:
        config = step.config
        message = EmailMessage(
            to=substitute(config.to, context).strip(),
            from_address=substitute(config.from_address, context).strip() or services.default_sender,
            subject=substitute(config.subject, context),
            body=substitute(config.body, context),
        )

        if not message.to:
            logger.warning("Skipping email step, recipient is empty", step_id=step.id)
            return StepOutcome(output={"success": False, "note": "Skipped: 'To' address was empty."})

        unresolved = find_placeholders(message.to) + find_placeholders(message.subject)
        if unresolved:
            logger.warning("Email has unresolved placeholders", step_id=step.id, paths=unresolved)

        result = await services.email.send(message)
        return StepOutcome(output=result)


EMAIL_STEP_TYPES = {
    StepKind.SEND_EMAIL: SendEmailStepExecutor,
}
