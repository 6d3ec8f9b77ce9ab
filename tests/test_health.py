from __future__ import annotations

import dataclasses

import pytest
from fastapi.testclient import TestClient

from toolkit_api.app.registry import SCRIPT_REGISTRY, WORKFLOW_IDS, _check_exhaustive, list_scripts


def test_health_endpoints(client: TestClient) -> None:
    for route in ("/health", "/healthz", "/live"):
        response = client.get(route)
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


def test_scripts_listing_covers_every_workflow(client: TestClient) -> None:
    response = client.get("/scripts")

    assert response.status_code == 200
    scripts = {item["id"]: item for item in response.json()}
    assert set(scripts) == set(WORKFLOW_IDS)
    assert scripts["setup-sod-demo"]["requiresOAuth"] is True
    assert scripts["enable-fido2"]["requiresOAuth"] is False
    admin_fields = [field["name"] for field in scripts["add-new-administrator"]["inputFields"]]
    assert admin_fields == ["firstName", "lastName", "email"]
    simulation_fields = {field["name"]: field for field in scripts["run-policy-simulation"]["inputFields"]}
    assert simulation_fields["policyTypes"]["multiple"] is True


def test_registry_keys_match_workflow_ids() -> None:
    assert tuple(SCRIPT_REGISTRY) == WORKFLOW_IDS
    assert all(spec.workflow_id == key for key, spec in SCRIPT_REGISTRY.items())


def test_registry_missing_a_workflow_id_is_rejected() -> None:
    registry = {key: spec for key, spec in SCRIPT_REGISTRY.items() if key != "run-all"}

    with pytest.raises(RuntimeError) as exc_info:
        _check_exhaustive(registry)

    assert "missing=['run-all']" in str(exc_info.value)
    assert "unknown=[]" in str(exc_info.value)


def test_registry_with_an_undeclared_id_is_rejected() -> None:
    extra = dataclasses.replace(SCRIPT_REGISTRY["enable-fido2"], workflow_id="enable-passkeys")
    registry = {**SCRIPT_REGISTRY, "enable-passkeys": extra}

    with pytest.raises(RuntimeError) as exc_info:
        _check_exhaustive(registry)

    assert "missing=[]" in str(exc_info.value)
    assert "unknown=['enable-passkeys']" in str(exc_info.value)


def test_registry_both_missing_and_undeclared_ids_are_named() -> None:
    registry = {key: spec for key, spec in SCRIPT_REGISTRY.items() if key != "setup-realms"}
    registry["setup-regions"] = dataclasses.replace(SCRIPT_REGISTRY["setup-realms"], workflow_id="setup-regions")

    with pytest.raises(RuntimeError, match=r"missing=\['setup-realms'\] unknown=\['setup-regions'\]"):
        _check_exhaustive(registry)


def test_scripts_listing_follows_the_executor_registry(client: TestClient) -> None:
    only = {"enable-fido2": SCRIPT_REGISTRY["enable-fido2"]}
    client.app.state.executor.registry = only

    response = client.get("/scripts")

    assert [item["id"] for item in response.json()] == ["enable-fido2"]
    assert list_scripts(only)[0].model_dump(by_alias=True)["id"] == "enable-fido2"
    assert len(list_scripts()) == len(WORKFLOW_IDS)
