"""Main module entrypoint for local runtime execution.

This module validates startup configuration and launches the FastAPI service
or runs one trading cycle.
"""

import argparse
import json
import logging

import uvicorn

from app.bootstrap import bootstrap_create_application, bootstrap_create_cycle_orchestrator
from app.config import config_configure_logging, config_load_settings

logger = logging.getLogger(__name__)


def main() -> None:
    """Run selected runtime command with validated startup configuration.

    Returns:
        None: This function does not return a runtime value.

    Raises:
        SettingsLoadError: Raised when configuration validation fails.
        SystemExit: Raised with code 1 when a cycle fails or the plan is not valid JSON.
    """

    argument_parser = argparse.ArgumentParser(description="Futures position ledger runtime entrypoint")
    argument_parser.add_argument(
        "command",
        nargs="?",
        default="api",
        choices=("api", "cycle-run"),
        help="Runtime command: `api` starts server, `cycle-run` runs one trading cycle",
        type=str,
    )
    argument_parser.add_argument(
        "--plan-json",
        dest="plan_json",
        type=str,
        help='Optional decision plan for `cycle-run`, for example \'{"reason": "...", "action": {"side": "buy", "size": 0.001}}\'',
    )
    parsed_arguments = argument_parser.parse_args()

    settings = config_load_settings()
    config_configure_logging(settings.log_level)

    if parsed_arguments.command == "cycle-run":
        plan = None
        if parsed_arguments.plan_json:
            try:
                plan = json.loads(parsed_arguments.plan_json)
            except json.JSONDecodeError as error:
                logger.error("invalid --plan-json: %s", error)
                raise SystemExit(1) from error

        cycle_orchestrator = bootstrap_create_cycle_orchestrator(settings=settings)
        execution_result = cycle_orchestrator.job_execute(job_name="trading_cycle", plan=plan)
        print(
            json.dumps(
                {
                    "status": execution_result.status,
                    "error_code": execution_result.error_code,
                    "order_outcome": execution_result.order_outcome,
                    "rejection_code": execution_result.rejection_code,
                    "realized_event_count": execution_result.realized_event_count,
                    "state_revision": execution_result.state_revision,
                }
            )
        )
        if execution_result.status != "success":
            raise SystemExit(1)
        return

    application = bootstrap_create_application(settings=settings)
    uvicorn.run(
        application,
        host=settings.application_host,
        port=settings.application_port,
    )


if __name__ == "__main__":
    main()
