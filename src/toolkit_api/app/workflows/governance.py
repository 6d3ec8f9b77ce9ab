"""Identity governance scripts: certification campaigns, entitlements and SoD rules.

Entitlement and risk-rule endpoints only accept OAuth bearer tokens, so those
scripts mint a fresh token per run through :func:`get_access_token`. The
campaign script still uses the management API token.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from ..models import Emit, ScriptInputs, StepResult, ToolkitConfig
from ..oauth import KeyMaterialError, TokenExchangeError, get_access_token
from ..okta_api import OktaApiError, OktaClient
from .common import batch_summary, external_value, failure, find_user, input_text

FALLBACK_REVIEWER_EMAIL = "fallback.reviewer@atko.email"
CAMPAIGN_NAME = "Quarterly Access Review - Manager"
CAMPAIGN_DURATION = timedelta(days=14)
CAMPAIGN_UNAVAILABLE = (
    "Access Certification API is not available. This feature requires Okta Identity Governance. "
    "Please ensure Identity Governance is enabled in your org."
)

SOD_DEMO_SCOPES = [
    "okta.orgs.read",
    "okta.governance.entitlements.manage",
    "okta.governance.riskRule.manage",
    "okta.governance.accessRequests.manage",
]
BUNDLE_SCOPES = [
    "okta.governance.entitlements.read",
    "okta.governance.accessRequests.manage",
]

ENTITLEMENTS_PATH = "/governance/api/v1/entitlements"
RISK_RULES_PATH = "/governance/api/v1/risk-rules"

GOVERNANCE_ERRORS = (OktaApiError, KeyMaterialError, TokenExchangeError)


def governance_client(config: ToolkitConfig, scopes: list[str]) -> OktaClient:
    access_token = get_access_token(
        config.org_url,
        config.client_id or "",
        config.private_key or "",
        config.key_id or "",
        scopes,
    )
    return OktaClient.for_access_token(config.org_url, access_token)


def campaign_schedule(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Start tomorrow at 09:00 UTC, run for fourteen days."""
    current = now or datetime.now(UTC)
    start = (current + timedelta(days=1)).replace(hour=9, minute=0, second=0, microsecond=0)
    return start, start + CAMPAIGN_DURATION


def create_access_certification_campaign(
    config: ToolkitConfig, inputs: ScriptInputs, emit: Emit
) -> StepResult:
    client = OktaClient.for_config(config)
    path = "/api/v1/governance/campaigns"
    try:
        reviewer = find_user(client, "profile.email", FALLBACK_REVIEWER_EMAIL)
        if reviewer is None:
            emit("info", "Creating Fallback Reviewer user...", step="reviewer")
            reviewer = client.post(
                "/api/v1/users",
                {
                    "profile": {
                        "firstName": "Fallback",
                        "lastName": "Reviewer",
                        "email": FALLBACK_REVIEWER_EMAIL,
                        "login": FALLBACK_REVIEWER_EMAIL,
                    }
                },
                params={"activate": "true"},
            )
        else:
            emit("info", "Fallback Reviewer already exists.", step="reviewer")

        listing = client.send("GET", path)
        if listing.status == 404:
            return StepResult(success=False, message=CAMPAIGN_UNAVAILABLE)
        if listing.ok and isinstance(listing.body, list):
            existing = next((c for c in listing.body if c.get("name") == CAMPAIGN_NAME), None)
            if existing is not None:
                return StepResult(
                    success=True,
                    message="Access Certification Campaign already exists in your org.",
                    data={"status": "exists", "campaign": existing},
                )

        start, end = campaign_schedule()
        payload = {
            "name": CAMPAIGN_NAME,
            "description": (
                "Quarterly review of all app assignments for active users. "
                "Managers review their direct reports' access."
            ),
            "type": "ACCESS_CERTIFICATION",
            "settings": {
                "resourceType": "APP",
                "userStatus": "ACTIVE",
                "reviewerType": "MANAGER",
                "fallbackReviewers": [{"id": reviewer["id"], "type": "USER"}],
                "schedule": {
                    "startDate": start.isoformat().replace("+00:00", "Z"),
                    "endDate": end.isoformat().replace("+00:00", "Z"),
                    "recurrence": {"frequency": "QUARTERLY", "interval": 1},
                },
                "reminders": {"enabled": True, "frequency": "WEEKLY"},
                "autoRevokeAccess": False,
            },
        }
        emit("info", "Creating Access Certification Campaign...", step="campaign")
        response = client.send("POST", path, payload=payload)
        if response.status in (404, 405):
            return StepResult(success=False, message=CAMPAIGN_UNAVAILABLE)
        if not response.ok:
            error = client.error_for("POST", path, response)
            if error.already_exists:
                return StepResult(
                    success=True,
                    message="Access Certification Campaign already exists in your org.",
                    data={"status": "exists"},
                )
            raise error
    except OktaApiError as exc:
        return failure("Error creating Access Certification Campaign", exc)

    campaign = response.body or {}
    return StepResult(
        success=True,
        message=(
            f"Access Certification Campaign created successfully (Campaign ID: {campaign.get('id')}). "
            f"Starts {start.date().isoformat()}, runs for 14 days, recurs quarterly."
        ),
        data={"status": "created", "campaign": campaign},
    )


def setup_sod_demo(config: ToolkitConfig, inputs: ScriptInputs, emit: Emit) -> StepResult:
    app_id = input_text(inputs, "appId")
    if not app_id:
        return StepResult(success=False, message="Application Instance ID (appId) is required.")
    entitlement_name = input_text(inputs, "entitlementName", "NetSuite Role")
    role1_name = input_text(inputs, "role1Name", "Payroll Administrator")
    role2_name = input_text(inputs, "role2Name", "Payroll Approver")
    role1_value = external_value(role1_name)
    role2_value = external_value(role2_name)

    try:
        emit("info", "Getting OAuth access token...", step="token")
        client = governance_client(config, SOD_DEMO_SCOPES)

        emit("info", "Getting org info...", step="org")
        org_id = client.get("/api/v1/org")["id"]

        entitlement = _find_entitlement(client, app_id, external_value(entitlement_name))
        entitlement_status = "created" if entitlement is None else "exists"
        if entitlement is None:
            emit("info", f'Creating entitlement "{entitlement_name}" with values...', step="entitlement")
            entitlement = client.post(
                ENTITLEMENTS_PATH,
                {
                    "name": entitlement_name,
                    "externalValue": external_value(entitlement_name),
                    "description": (
                        f"Business roles in {entitlement_name.replace(' Role', '')} "
                        "used for access requests and governance"
                    ),
                    "parent": {"externalId": app_id, "type": "APPLICATION"},
                    "multiValue": True,
                    "dataType": "string",
                    "values": [
                        {
                            "name": role1_name,
                            "externalValue": role1_value,
                            "description": f"Can create/modify {_role_subject(role1_name, 'payroll entries', 'records')}",
                        },
                        {
                            "name": role2_name,
                            "externalValue": role2_value,
                            "description": f"Can approve {_role_subject(role2_name, 'payroll changes', 'requests')}",
                        },
                    ],
                },
            )
        else:
            emit("info", f'Entitlement "{entitlement_name}" already exists, reusing it.', step="entitlement")
        values = {value.get("externalValue"): value for value in entitlement.get("values") or []}
        value1, value2 = values.get(role1_value), values.get(role2_value)
        if value1 is None or value2 is None:
            return StepResult(
                success=False,
                message=f"Entitlement {entitlement_status} but values could not be retrieved. Check the entitlement in Admin Console.",
                data={"entitlement": entitlement},
            )
        if entitlement_status == "created":
            emit("success", f"Created entitlement {entitlement['id']}.", step="entitlement")

        risk_rule_name = f"SoD - {role1_name} vs {role2_name}"
        emit("info", "Creating SoD risk rule...", step="risk-rule")
        risk_rule, risk_rule_status = _create_risk_rule(
            client,
            {
                "name": risk_rule_name,
                "description": (
                    f"Prevents a user from holding both {role1_name.lower()} and {role2_name.lower()} roles"
                ),
                "type": "SEPARATION_OF_DUTIES",
                "resources": [{"resourceOrn": f"orn:okta:idp:{org_id}:apps:netsuite:{app_id}"}],
                "conflictCriteria": {
                    "and": [
                        _conflict_criterion(role1_value, entitlement["id"], value1["id"]),
                        _conflict_criterion(role2_value, entitlement["id"], value2["id"]),
                    ]
                },
            },
        )
    except GOVERNANCE_ERRORS as exc:
        return failure("Error setting up SoD demo", exc)

    lines = [
        f'{"Created" if entitlement_status == "created" else "Reusing"} entitlement "{entitlement_name}" ({entitlement["id"]}) with values:',
        f"  - {role1_name} ({value1['id']})",
        f"  - {role2_name} ({value2['id']})",
        (
            f'Created SoD risk rule "{risk_rule.get("name")}" ({risk_rule.get("id")})'
            if risk_rule_status == "created"
            else f'SoD risk rule "{risk_rule_name}" already exists'
        ),
        "",
        'Next: Run "Create Entitlement Bundles" to enable Access Requests for these roles.',
    ]
    return StepResult(
        success=True,
        message="\n".join(lines),
        data={
            "entitlement": entitlement,
            "entitlementStatus": entitlement_status,
            "riskRule": risk_rule,
            "riskRuleStatus": risk_rule_status,
        },
    )


def create_entitlement_bundles(
    config: ToolkitConfig, inputs: ScriptInputs, emit: Emit
) -> StepResult:
    entitlement_id = input_text(inputs, "entitlementId")
    requested = [
        (input_text(inputs, "bundle1Name"), input_text(inputs, "bundle1ValueId")),
        (input_text(inputs, "bundle2Name"), input_text(inputs, "bundle2ValueId")),
    ]
    if not entitlement_id or not all(requested[0]):
        return StepResult(
            success=False,
            message="Entitlement ID, bundle 1 name and bundle 1 value ID are required.",
        )
    bundles = [(name, value_id) for name, value_id in requested if name and value_id]

    try:
        emit("info", "Getting OAuth access token...", step="token")
        client = governance_client(config, BUNDLE_SCOPES)
    except GOVERNANCE_ERRORS as exc:
        return failure("Error creating entitlement bundles", exc)

    results: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []
    for name, value_id in bundles:
        emit("info", f"Creating bundle: {name}...", step=name)
        try:
            bundle = client.post(
                "/governance/api/v1/entitlement-bundles",
                {
                    "name": name,
                    "description": f"Access bundle for {name}",
                    "status": "ACTIVE",
                    "entitlements": [{"id": entitlement_id, "values": [{"id": value_id}]}],
                },
            )
        except OktaApiError as exc:
            if exc.already_exists:
                results.append({"name": name, "status": "exists"})
                emit("info", f"Bundle {name} already exists, skipping.", step=name)
            else:
                errors.append({"name": name, "error": str(exc)})
                emit("error", f"Failed to create bundle {name}: {exc.summary}", step=name)
            continue
        results.append({"name": name, "status": "created", "id": bundle.get("id")})

    created = [item for item in results if item["status"] == "created"]
    lines = [f"Created {len(created)} entitlement bundle(s):"]
    lines.extend(f"  - {item['name']} ({item['id']})" for item in created)
    if errors:
        lines.append(f"Errors: {len(errors)}")
        lines.extend(f"  - {item['name']}: {item['error']}" for item in errors)
    else:
        lines.extend(["", "Bundles are now available for Access Requests!"])
    return StepResult(success=not errors, message="\n".join(lines), data=batch_summary(results, errors))


def _role_subject(role_name: str, payroll_subject: str, default_subject: str) -> str:
    return payroll_subject if "payroll" in role_name.lower() else default_subject


def _conflict_criterion(role_value: str, entitlement_id: str, value_id: str) -> dict[str, Any]:
    return {
        "name": f"has_{role_value}",
        "attribute": "principal.effective_grants",
        "operation": "CONTAINS_ONE",
        "value": {
            "type": "ENTITLEMENTS",
            "value": [{"id": entitlement_id, "values": [{"id": value_id}]}],
        },
    }


def _find_entitlement(client: OktaClient, app_id: str, entitlement_value: str) -> dict[str, Any] | None:
    """Existing entitlement of the app with ``entitlement_value``, values included."""
    response = client.send(
        "GET",
        ENTITLEMENTS_PATH,
        params={"filter": f'parent.externalId eq "{app_id}" AND parent.type eq "APPLICATION"'},
    )
    # Lookup failures fall through to the create call, which reports them.
    if not response.ok:
        return None
    match = next(
        (item for item in _items(response.body) if item.get("externalValue") == entitlement_value),
        None,
    )
    if match is None or match.get("values"):
        return match
    values = client.get(f"{ENTITLEMENTS_PATH}/{match['id']}/values")
    return {**match, "values": _items(values)}


def _create_risk_rule(client: OktaClient, payload: dict[str, Any]) -> tuple[dict[str, Any], str]:
    try:
        return client.post(RISK_RULES_PATH, payload), "created"
    except OktaApiError as exc:
        if exc.already_exists:
            return {"name": payload["name"]}, "exists"
        raise


def _items(body: Any) -> list[dict[str, Any]]:
    # Governance list endpoints wrap results in {"data": [...]}.
    if isinstance(body, dict):
        body = body.get("data")
    return body if isinstance(body, list) else []
