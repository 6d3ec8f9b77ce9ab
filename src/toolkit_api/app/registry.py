"""Closed set of workflow ids and the scripts registered under them."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal, get_args

from .models import Emit, InputField, ScriptInputs, ScriptSummary, StepResult, ToolkitConfig
from .workflows import (
    add_box_app,
    add_new_administrator,
    add_salesforce_saml_app,
    configure_entity_risk_policy,
    create_access_certification_campaign,
    create_device_assurance_policies,
    create_entitlement_bundles,
    create_standard_department_groups,
    create_super_admins_group,
    enable_fido2,
    populate_demo_users,
    run_all,
    run_policy_simulation,
    setup_realms,
    setup_sod_demo,
)

ScriptHandler = Callable[[ToolkitConfig, ScriptInputs, Emit], StepResult]

WorkflowId = Literal[
    "enable-fido2",
    "create-super-admins-group",
    "populate-demo-users",
    "create-standard-department-groups",
    "create-device-assurance-policies",
    "configure-entity-risk-policy",
    "add-salesforce-saml-app",
    "add-box-app",
    "create-access-certification-campaign",
    "setup-realms",
    "add-new-administrator",
    "run-policy-simulation",
    "setup-sod-demo",
    "create-entitlement-bundles",
    "run-all",
]
WORKFLOW_IDS: tuple[str, ...] = get_args(WorkflowId)


@dataclass(frozen=True)
class ScriptSpec:
    workflow_id: WorkflowId
    name: str
    description: str
    category: str
    handler: ScriptHandler
    input_fields: tuple[InputField, ...] = ()
    requires_oauth: bool = False

    def summary(self) -> ScriptSummary:
        return ScriptSummary(
            id=self.workflow_id,
            name=self.name,
            description=self.description,
            category=self.category,
            requires_oauth=self.requires_oauth,
            input_fields=list(self.input_fields),
        )


def build_script_registry() -> dict[str, ScriptSpec]:
    specs = [
        ScriptSpec(
            workflow_id="enable-fido2",
            name="Enable FIDO2 Authenticator",
            description="Configures and activates FIDO2 WebAuthn as an authentication option.",
            category="Security & Policies",
            handler=enable_fido2,
        ),
        ScriptSpec(
            workflow_id="create-super-admins-group",
            name="Create Super Administrators Group",
            description="Creates a high-privilege admin group and assigns the SUPER_ADMIN role.",
            category="Setup & Users",
            handler=create_super_admins_group,
        ),
        ScriptSpec(
            workflow_id="populate-demo-users",
            name="Populate Demo Users",
            description="Creates demo end-users across departments.",
            category="Setup & Users",
            handler=populate_demo_users,
        ),
        ScriptSpec(
            workflow_id="create-standard-department-groups",
            name="Create Standard Department Groups",
            description=(
                "Creates groups for Sales, Engineering, Marketing, Finance, HR, Partners, "
                "Contractors and adds rules to auto-assign users."
            ),
            category="Setup & Users",
            handler=create_standard_department_groups,
        ),
        ScriptSpec(
            workflow_id="create-device-assurance-policies",
            name="Create Device Assurance Policies",
            description=(
                "Creates device assurance policies for Android, iOS, macOS, and Windows. "
                "Requires Okta Identity Engine (OIE)."
            ),
            category="Security & Policies",
            handler=create_device_assurance_policies,
        ),
        ScriptSpec(
            workflow_id="configure-entity-risk-policy",
            name="Review Entity Risk Policy",
            description=(
                "Reviews the Entity Risk Policy and lists its rules. Rules are system-managed "
                "and configured in the Admin Console."
            ),
            category="Security & Policies",
            handler=configure_entity_risk_policy,
        ),
        ScriptSpec(
            workflow_id="add-salesforce-saml-app",
            name="Add Salesforce SAML App",
            description="Adds Salesforce from the app catalog with SAML 2.0 authentication.",
            category="Applications",
            handler=add_salesforce_saml_app,
        ),
        ScriptSpec(
            workflow_id="add-box-app",
            name="Add Box App",
            description="Adds Box from the app catalog with SAML 2.0 authentication.",
            category="Applications",
            handler=add_box_app,
        ),
        ScriptSpec(
            workflow_id="create-access-certification-campaign",
            name="Create Access Certification Campaign",
            description=(
                "Creates a quarterly recurring campaign reviewing app assignments of active "
                "users, with managers as reviewers and a fallback reviewer."
            ),
            category="Governance",
            handler=create_access_certification_campaign,
        ),
        ScriptSpec(
            workflow_id="setup-realms",
            name="Setup Realms",
            description=(
                "Renames the default realm to 'Employees' and creates 'Partners' and "
                "'Contractors' realms."
            ),
            category="Setup & Users",
            handler=setup_realms,
        ),
        ScriptSpec(
            workflow_id="add-new-administrator",
            name="Add New Administrator",
            description="Creates a new admin user and adds them to the Super Administrators group.",
            category="Setup & Users",
            handler=add_new_administrator,
            input_fields=(
                InputField(name="firstName", label="First Name", required=True, placeholder="John"),
                InputField(name="lastName", label="Last Name", required=True, placeholder="Doe"),
                InputField(
                    name="email",
                    label="Email / Username",
                    required=True,
                    placeholder="john.doe@example.com",
                ),
            ),
        ),
        ScriptSpec(
            workflow_id="run-policy-simulation",
            name="Run Policy Simulation",
            description=(
                "Simulates policy evaluation for an application. Leave policy types empty to "
                "simulate all types. Requires Okta Identity Engine (OIE)."
            ),
            category="Security & Policies",
            handler=run_policy_simulation,
            input_fields=(
                InputField(name="appInstance", label="Application", required=True),
                InputField(name="policyTypes", label="Policy Types", multiple=True),
            ),
        ),
        ScriptSpec(
            workflow_id="setup-sod-demo",
            name="Setup SoD Demo",
            description=(
                "Creates an entitlement with two values and a Separation of Duties risk rule. "
                "Requires OAuth credentials with OIG scopes."
            ),
            category="Governance",
            handler=setup_sod_demo,
            requires_oauth=True,
            input_fields=(
                InputField(
                    name="appId",
                    label="Application Instance ID",
                    required=True,
                    placeholder="0oaxxxxxxxxxxxxxxxx",
                ),
                InputField(name="entitlementName", label="Entitlement Name", placeholder="NetSuite Role"),
                InputField(name="role1Name", label="Role 1 (Creator Role)", placeholder="Payroll Administrator"),
                InputField(name="role2Name", label="Role 2 (Approver Role)", placeholder="Payroll Approver"),
            ),
        ),
        ScriptSpec(
            workflow_id="create-entitlement-bundles",
            name="Create Entitlement Bundles",
            description=(
                "Creates entitlement bundles for Access Requests from entitlement value IDs. "
                "Requires OAuth credentials with OIG scopes."
            ),
            category="Governance",
            handler=create_entitlement_bundles,
            requires_oauth=True,
            input_fields=(
                InputField(name="entitlementId", label="Entitlement ID", required=True),
                InputField(name="bundle1Name", label="Bundle 1 Name", required=True),
                InputField(name="bundle1ValueId", label="Bundle 1 Entitlement Value ID", required=True),
                InputField(name="bundle2Name", label="Bundle 2 Name (Optional)"),
                InputField(name="bundle2ValueId", label="Bundle 2 Entitlement Value ID (Optional)"),
            ),
        ),
        ScriptSpec(
            workflow_id="run-all",
            name="Run All Setup Scripts",
            description="Runs every non-interactive setup script in order and reports each outcome.",
            category="Setup & Users",
            handler=run_all,
        ),
    ]
    registry = {spec.workflow_id: spec for spec in specs}
    _check_exhaustive(registry)
    return registry


def _check_exhaustive(registry: dict[str, ScriptSpec]) -> None:
    missing = sorted(set(WORKFLOW_IDS) - registry.keys())
    unknown = sorted(registry.keys() - set(WORKFLOW_IDS))
    if missing or unknown:
        raise RuntimeError(
            f"script registry out of sync with WorkflowId: missing={missing} unknown={unknown}"
        )


SCRIPT_REGISTRY = build_script_registry()


def list_scripts(registry: dict[str, ScriptSpec] | None = None) -> list[ScriptSummary]:
    source = SCRIPT_REGISTRY if registry is None else registry
    return [spec.summary() for spec in source.values()]
