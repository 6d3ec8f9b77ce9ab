"""Catalog (OIN) application scripts."""

from __future__ import annotations

from typing import Any

from ..models import Emit, ScriptInputs, StepResult, ToolkitConfig
from ..okta_api import OktaApiError, OktaClient
from .common import failure

# Okta expression placeholders, resolved server-side.
IDP_ISSUER = "http://www.okta.com/${org.externalKey}"
PASSWORD_PROTECTED_TRANSPORT = "urn:oasis:names:tc:SAML:2.0:ac:classes:PasswordProtectedTransport"

_SAML_DEFAULTS = {
    "defaultRelayState": "",
    "idpIssuer": IDP_ISSUER,
    "responseSigned": True,
    "assertionSigned": True,
    "signatureAlgorithm": "RSA_SHA256",
    "digestAlgorithm": "SHA256",
    "honorForceAuthn": True,
    "authnContextClassRef": PASSWORD_PROTECTED_TRANSPORT,
}

SALESFORCE_APP: dict[str, Any] = {
    "name": "salesforce",
    "label": "Salesforce",
    "signOnMode": "SAML_2_0",
    "settings": {
        "app": {"instanceType": "PRODUCTION"},
        "signOn": {
            **_SAML_DEFAULTS,
            "ssoAcsUrl": "https://login.salesforce.com",
            "audience": "https://saml.salesforce.com",
            "recipient": "https://login.salesforce.com",
            "destination": "https://login.salesforce.com",
            "subjectNameIdTemplate": "${user.userName}",
            "subjectNameIdFormat": "urn:oasis:names:tc:SAML:1.1:nameid-format:unspecified",
        },
    },
}

BOX_ACS_URL = "https://sso.services.box.net/sp/ACS.saml2"
BOX_APP: dict[str, Any] = {
    # Box's catalog identifier.
    "name": "boxnet",
    "label": "Box",
    "signOnMode": "SAML_2_0",
    "settings": {
        "signOn": {
            **_SAML_DEFAULTS,
            "ssoAcsUrl": BOX_ACS_URL,
            "audience": BOX_ACS_URL,
            "recipient": BOX_ACS_URL,
            "destination": BOX_ACS_URL,
            "subjectNameIdTemplate": "${user.email}",
            "subjectNameIdFormat": "urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress",
        },
    },
}


def add_catalog_app(client: OktaClient, app: dict[str, Any], display_name: str, emit: Emit) -> StepResult:
    existing = client.get("/api/v1/apps", params={"filter": f'name eq "{app["name"]}"', "limit": 1}) or []
    if existing:
        return StepResult(
            success=True,
            message=f"{display_name} app already exists in your org.",
            data={"status": "exists", "app": existing[0]},
        )

    emit("info", f"Creating {display_name} app...", step=app["name"])
    try:
        created = client.post("/api/v1/apps", app)
    except OktaApiError as exc:
        if exc.already_exists:
            return StepResult(
                success=True,
                message=f"{display_name} app already exists in your org.",
                data={"status": "exists"},
            )
        raise
    return StepResult(
        success=True,
        message=f"{display_name} app added successfully (App ID: {created.get('id')}).",
        data={"status": "created", "app": created},
    )


def add_salesforce_saml_app(config: ToolkitConfig, inputs: ScriptInputs, emit: Emit) -> StepResult:
    try:
        return add_catalog_app(OktaClient.for_config(config), SALESFORCE_APP, "Salesforce SAML", emit)
    except OktaApiError as exc:
        return failure("Error adding Salesforce app", exc)


def add_box_app(config: ToolkitConfig, inputs: ScriptInputs, emit: Emit) -> StepResult:
    try:
        return add_catalog_app(OktaClient.for_config(config), BOX_APP, "Box", emit)
    except OktaApiError as exc:
        return failure("Error adding Box app", exc)
