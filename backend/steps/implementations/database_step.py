"""Database Query step executor."""

from typing import Any, Mapping

import structlog

from core.constants import StepKind
from steps.base_step import BaseStepExecutor, ExecutionServices, StepOutcome
from workflow.models import DatabaseQueryConfig, DatabaseQueryStep
from workflow.resolver import substitute

logger = structlog.get_logger(__name__)


class DatabaseQueryStepExecutor(BaseStepExecutor):
    """Run a query against the database behind a stored credential.

    Config:
        credential_id: Id of the database credential
        query: SQL, may contain {{placeholders}}
    """

    kinds = (StepKind.DATABASE_QUERY,)
    display_name = "Database Query"
    description = "Run a SQL query and expose the rows to later steps"
    config_model = DatabaseQueryConfig

    async def execute(
        self,
        step: DatabaseQueryStep,
        context: Mapping[str, Any],
        services: ExecutionServices,
    ) -> StepOutcome:
        config = step.config
        credential = await services.credentials.get_credential_by_id(config.credential_id)
        if credential is None:
            logger.error("Database credential not found", step_id=step.id, credential_id=config.credential_id)
            return StepOutcome(output={"success": False, "rows": [], "error": "credential not found"})

        query = substitute(config.query, context)
        logger.info(
            "Running database query",
            step_id=step.id,
            app_name=credential.app_name,
            account=credential.account_name,
        )

        result = await services.queries.execute(credential.connection_handle, query)
        return StepOutcome(output=result)


DATABASE_STEP_TYPES = {
    StepKind.DATABASE_QUERY: DatabaseQueryStepExecutor,
}
