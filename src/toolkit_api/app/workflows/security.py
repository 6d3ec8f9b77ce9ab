"""Authenticator, device assurance, risk and policy scripts."""

from __future__ import annotations

import json
from typing import Any

from ..models import Emit, ScriptInputs, StepResult, ToolkitConfig
from ..okta_api import OktaApiError, OktaClient
from .common import batch_summary, failure, input_list, input_text

WEBAUTHN_KEYS = ("webauthn", "security_key")

DEVICE_ASSURANCE_POLICIES: tuple[dict[str, Any], ...] = (
    {
        "name": "Android Assurance Policy",
        "platform": "ANDROID",
        "screenLockType": {"include": ["BIOMETRIC"]},
    },
    {
        "name": "iOS Assurance Policy",
        "platform": "IOS",
        "osVersion": {"minimum": "14.0"},
        "screenLockType": {"include": ["BIOMETRIC", "PASSCODE"]},
    },
    {
        "name": "macOS Assurance Policy",
        "platform": "MACOS",
        "osVersion": {"minimum": "11.0"},
        "diskEncryptionType": {"include": ["ALL_INTERNAL_VOLUMES"]},
    },
    {
        "name": "Windows Assurance Policy",
        "platform": "WINDOWS",
        "osVersion": {"minimum": "10.0.0"},
        "diskEncryptionType": {"include": ["ALL_INTERNAL_VOLUMES"]},
        # Okta rejects false here; the attribute is either true or omitted.
        "secureHardwarePresent": True,
    },
)

DEVICE_ASSURANCE_UNAVAILABLE = (
    "Device Assurance API is not available. This feature requires Okta Identity Engine (OIE) "
    "and may need to be enabled in your org settings."
)
POLICY_SIMULATION_UNAVAILABLE = (
    "Policy Simulation API is not available. This feature requires Okta Identity Engine (OIE)."
)
RISK_POLICY_TYPES = ("RISK", "ENTITY_RISK")


def enable_fido2(config: ToolkitConfig, inputs: ScriptInputs, emit: Emit) -> StepResult:
    client = OktaClient.for_config(config)
    try:
        authenticators = client.get("/api/v1/authenticators") or []
        webauthn = next((a for a in authenticators if a.get("key") in WEBAUTHN_KEYS), None)

        if webauthn is not None and webauthn.get("status") == "ACTIVE":
            return StepResult(
                success=True,
                message="FIDO2 (WebAuthn) authenticator is already active.",
                data={"status": "exists", "authenticator": webauthn},
            )

        if webauthn is not None:
            emit("info", "Activating FIDO2 (WebAuthn) authenticator...", step="activate")
            activated = client.post(f"/api/v1/authenticators/{webauthn['id']}/lifecycle/activate")
            return StepResult(
                success=True,
                message="FIDO2 (WebAuthn) authenticator activated.",
                data={"status": "activated", "authenticator": activated or webauthn},
            )

        emit("info", "Creating FIDO2 (WebAuthn) authenticator...", step="create")
        created = client.post(
            "/api/v1/authenticators",
            {"key": "webauthn", "name": "FIDO2 (WebAuthn)", "status": "ACTIVE", "type": "webauthn"},
        )
        return StepResult(
            success=True,
            message="FIDO2 (WebAuthn) authenticator created and enabled.",
            data={"status": "created", "authenticator": created},
        )
    except OktaApiError as exc:
        return failure("Error enabling FIDO2/WebAuthn", exc)


def create_device_assurance_policies(
    config: ToolkitConfig, inputs: ScriptInputs, emit: Emit
) -> StepResult:
    client = OktaClient.for_config(config)
    path = "/api/v1/device-assurances"
    try:
        listing = client.send("GET", path)
    except OktaApiError as exc:
        return failure("Error creating device assurance policies", exc)
    if listing.status in (403, 404):
        return StepResult(success=False, message=DEVICE_ASSURANCE_UNAVAILABLE)
    if not listing.ok:
        return failure("Error creating device assurance policies", client.error_for("GET", path, listing))

    existing = listing.body if isinstance(listing.body, list) else []
    results: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []

    for policy in DEVICE_ASSURANCE_POLICIES:
        name, platform = policy["name"], policy["platform"]
        match = next(
            (p for p in existing if p.get("name") == name or p.get("platform") == platform),
            None,
        )
        if match is not None:
            results.append({"name": name, "platform": platform, "status": "exists", "id": match.get("id")})
            emit("info", f"{name} already exists, skipping.", step=platform)
            continue

        emit("info", f"Creating {name}...", step=platform)
        try:
            created = client.post(path, policy)
        except OktaApiError as exc:
            if exc.already_exists:
                results.append({"name": name, "platform": platform, "status": "exists"})
                continue
            errors.append({"name": name, "platform": platform, "error": str(exc)})
            emit("error", f"Failed to create {name}: {exc.summary}", step=platform)
            continue
        results.append({"name": name, "platform": platform, "status": "created", "id": created.get("id")})
        emit("success", f"Created {name}.", step=platform)

    if errors:
        details = "; ".join(f"{e['name']}: {e['error']}" for e in errors)
        message = (
            "Device assurance policies processing complete. "
            f"Created/Found: {len(results)}, Errors: {len(errors)}. Error details: {details}"
        )
    else:
        message = f"Device assurance policies created successfully. Created/Found: {len(results)}."
    return StepResult(success=not errors, message=message, data=batch_summary(results, errors))


def configure_entity_risk_policy(
    config: ToolkitConfig, inputs: ScriptInputs, emit: Emit
) -> StepResult:
    client = OktaClient.for_config(config)
    try:
        response = client.send("GET", "/api/v1/policies", params={"type": "RISK"})
        if response.ok:
            policies = response.body or []
        elif response.status == 400:
            emit("warn", "RISK policy type not recognized, trying ENTITY_RISK...", step="lookup")
            fallback = client.send("GET", "/api/v1/policies", params={"type": "ENTITY_RISK"})
            policies = fallback.body if fallback.ok and isinstance(fallback.body, list) else []
            if not policies:
                reason = client.error_for("GET", "/api/v1/policies", response).summary
                return StepResult(
                    success=False,
                    message=(
                        f"Entity Risk Policy type not recognized. The API returned: {reason}. "
                        "Please check the Admin Console to see if Entity Risk is enabled."
                    ),
                )
        else:
            raise client.error_for("GET", "/api/v1/policies", response)

        risk_policy = next(
            (
                p
                for p in policies
                if p.get("type") in RISK_POLICY_TYPES
                and (
                    "Entity Risk" in p.get("name", "")
                    or "Default" in p.get("name", "")
                    or p.get("system") is True
                )
            ),
            policies[0] if policies else None,
        )
        if risk_policy is None:
            return StepResult(success=False, message="Entity Risk Policy not found.")

        policy_id = risk_policy["id"]
        emit("info", f"Found Entity Risk Policy: {risk_policy.get('name')}", step="lookup")
        rules = client.get(f"/api/v1/policies/{policy_id}/rules") or []
    except OktaApiError as exc:
        return failure("Error configuring Entity Risk Policy", exc)

    summary = [
        {
            "name": rule.get("name"),
            "id": rule.get("id"),
            "status": rule.get("status"),
            "priority": rule.get("priority"),
            "system": rule.get("system"),
        }
        for rule in rules
    ]
    for rule in summary:
        emit(
            "info",
            f"- {rule['name']} (Status: {rule['status']}, Priority: {rule['priority']})",
            step="rules",
        )
    return StepResult(
        success=True,
        message=(
            f"Entity Risk Policy reviewed successfully. Found {len(rules)} existing rule(s). "
            "Entity Risk Policy rules are system-managed and cannot be created or modified via API. "
            "Configure them in the Okta Admin Console under Security > Entity Risk."
        ),
        data={"policyName": risk_policy.get("name"), "policyId": policy_id, "rules": summary},
    )


def run_policy_simulation(config: ToolkitConfig, inputs: ScriptInputs, emit: Emit) -> StepResult:
    app_instance = input_text(inputs, "appInstance")
    if not app_instance:
        return StepResult(success=False, message="Application selection is required.")
    policy_types = input_list(inputs, "policyTypes")

    payload: dict[str, Any] = {"appInstance": app_instance}
    if policy_types:
        payload["policyTypes"] = policy_types

    client = OktaClient.for_config(config)
    path = "/api/v1/policies/simulate"
    emit(
        "info",
        f"Simulating {', '.join(policy_types) if policy_types else 'all policy types'} for {app_instance}...",
        step="simulate",
    )
    try:
        response = client.send("POST", path, payload=payload, params={"expand": "EVALUATED,RULE"})
    except OktaApiError as exc:
        return failure("Error running policy simulation", exc)
    if not response.ok:
        error = client.error_for("POST", path, response)
        if response.status in (404, 405):
            return StepResult(success=False, message=f"{POLICY_SIMULATION_UNAVAILABLE} Error: {error.summary}")
        return StepResult(success=False, message=f"Policy simulation failed: {error.summary}")

    simulation = response.body or {}
    summary = [_evaluation_summary(evaluation) for evaluation in simulation.get("evaluation") or []]
    lines = ["Policy simulation completed successfully.", ""]
    for item in summary:
        lines.append(f"**{item['policyType']}**")
        if item["matchedPolicy"]:
            lines.append(f"  - Policy: {item['matchedPolicy']['name']} (Priority: {item['matchedPolicy']['priority']})")
        if item["matchedRule"]:
            lines.append(f"  - Rule: {item['matchedRule']['name']} (Priority: {item['matchedRule']['priority']})")
        if item["actions"]:
            lines.append(f"  - Actions: {json.dumps(item['actions'])}")
        lines.append("")
    return StepResult(
        success=True,
        message="\n".join(lines).rstrip() + "\n",
        data={"simulation": simulation, "summary": summary},
    )


def _evaluation_summary(evaluation: dict[str, Any]) -> dict[str, Any]:
    result = evaluation.get("result") or {}

    def _ref(item: dict[str, Any] | None) -> dict[str, Any] | None:
        if not item:
            return None
        return {"id": item.get("id"), "name": item.get("name"), "priority": item.get("priority")}

    return {
        "policyType": evaluation.get("policyType"),
        "status": evaluation.get("status"),
        "matchedPolicy": _ref(result.get("policy")),
        "matchedRule": _ref(result.get("rule")),
        "actions": result.get("actions"),
    }
