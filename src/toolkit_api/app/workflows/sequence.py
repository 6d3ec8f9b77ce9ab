"""The run-all script: every non-interactive setup script, in order."""

from __future__ import annotations

import logging
from typing import Any

from ..models import Emit, ScriptInputs, StepResult, ToolkitConfig
from .applications import add_box_app, add_salesforce_saml_app
from .common import scoped_emit
from .governance import create_access_certification_campaign
from .security import (
    configure_entity_risk_policy,
    create_device_assurance_policies,
    enable_fido2,
)
from .users import (
    create_standard_department_groups,
    create_super_admins_group,
    populate_demo_users,
    setup_realms,
)

logger = logging.getLogger(__name__)

RUN_ALL_SEQUENCE = (
    ("enable-fido2", enable_fido2),
    ("create-super-admins-group", create_super_admins_group),
    ("populate-demo-users", populate_demo_users),
    ("create-standard-department-groups", create_standard_department_groups),
    ("create-device-assurance-policies", create_device_assurance_policies),
    ("configure-entity-risk-policy", configure_entity_risk_policy),
    ("add-salesforce-saml-app", add_salesforce_saml_app),
    ("add-box-app", add_box_app),
    ("create-access-certification-campaign", create_access_certification_campaign),
    ("setup-realms", setup_realms),
)


def run_all(config: ToolkitConfig, inputs: ScriptInputs, emit: Emit) -> StepResult:
    results: dict[str, Any] = {}
    for workflow_id, handler in RUN_ALL_SEQUENCE:
        emit("info", f"Running {workflow_id}...", step=workflow_id)
        try:
            result = handler(config, inputs, scoped_emit(emit, workflow_id))
        except Exception as exc:  # noqa: BLE001
            logger.exception("run_all event=fault workflow_id=%s", workflow_id)
            result = StepResult(success=False, message=str(exc) or exc.__class__.__name__)
        emit("success" if result.success else "error", result.message, step=workflow_id)
        results[workflow_id] = result.model_dump(mode="json")

    succeeded = all(item["success"] for item in results.values())
    return StepResult(
        success=succeeded,
        message=(
            "All automation scripts completed successfully."
            if succeeded
            else "Automation scripts completed with some errors. Check individual results for details."
        ),
        data=results,
    )
