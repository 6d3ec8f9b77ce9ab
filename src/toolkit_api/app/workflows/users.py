"""User, group and realm provisioning scripts."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from ..models import Emit, ScriptInputs, StepResult, ToolkitConfig
from ..okta_api import OktaApiError, OktaClient
from .common import (
    EMAIL_PATTERN,
    batch_summary,
    failure,
    find_group,
    find_or_create_group,
    find_user,
    input_text,
)

SUPER_ADMINS_GROUP = "Super Administrators"
SUPER_ADMIN_ROLE = "SUPER_ADMIN"
DEMO_USER_COUNT = 15
DEMO_EMAIL_DOMAIN = "atko.email"

DEPARTMENT_GROUPS = (
    "Engineering",
    "Sales",
    "Marketing",
    "Finance",
    "Human Resources",
    "Partners",
    "Contractors",
)

_DEMO_DEPARTMENTS = (
    (
        "Engineering",
        (
            "Senior Software Engineer",
            "Staff Software Engineer",
            "DevOps Engineer",
            "Security Engineer",
            "Engineering Manager",
        ),
    ),
    (
        "Sales",
        (
            "Account Executive",
            "Sales Engineer",
            "Sales Manager",
            "Business Development Representative",
            "Customer Success Manager",
        ),
    ),
    (
        "Marketing",
        (
            "Marketing Manager",
            "Growth Marketing Specialist",
            "Demand Generation Manager",
            "Content Strategist",
        ),
    ),
    ("Finance", ("Finance Manager", "Senior Accountant", "FP&A Analyst", "Controller")),
    ("Human Resources", ("HR Manager", "Recruiter", "People Operations Specialist")),
)
_DEMO_CITIES = (
    ("San Francisco", "CA", "1 Market St"),
    ("New York", "NY", "350 5th Ave"),
    ("Chicago", "IL", "233 S Wacker Dr"),
    ("Austin", "TX", "500 Congress Ave"),
    ("Seattle", "WA", "500 5th Ave N"),
)
_DEMO_FIRST_NAMES = ("Alex", "Taylor", "Jordan", "Casey", "Morgan", "Riley", "Jamie", "Cameron", "Avery", "Logan")
_DEMO_LAST_NAMES = ("Nguyen", "Garcia", "Patel", "Kim", "Johnson", "Lee", "Martinez", "Chen", "Brown", "Davis")


@dataclass(frozen=True)
class DemoUserProfile:
    firstName: str
    lastName: str
    email: str
    login: str
    department: str
    title: str
    city: str
    state: str
    streetAddress: str


def build_demo_user_profiles(count: int = DEMO_USER_COUNT) -> list[DemoUserProfile]:
    """Deterministic profiles: rerunning produces the same logins."""
    profiles: list[DemoUserProfile] = []
    for index in range(count):
        department, titles = _DEMO_DEPARTMENTS[index % len(_DEMO_DEPARTMENTS)]
        city, state, street = _DEMO_CITIES[index % len(_DEMO_CITIES)]
        first_name = _DEMO_FIRST_NAMES[index % len(_DEMO_FIRST_NAMES)]
        last_name = _DEMO_LAST_NAMES[index % len(_DEMO_LAST_NAMES)]
        local_part = "".join(ch for ch in f"{first_name}.{last_name}".lower() if ch.isalnum() or ch == ".")
        email = f"{local_part}+demo{index + 1}@{DEMO_EMAIL_DOMAIN}"
        profiles.append(
            DemoUserProfile(
                firstName=first_name,
                lastName=last_name,
                email=email,
                login=email,
                department=department,
                title=titles[index % len(titles)],
                city=city,
                state=state,
                streetAddress=street,
            )
        )
    return profiles


def create_super_admins_group(
    config: ToolkitConfig, inputs: ScriptInputs, emit: Emit
) -> StepResult:
    client = OktaClient.for_config(config)
    try:
        group, group_status = find_or_create_group(
            client,
            SUPER_ADMINS_GROUP,
            "Privileged group for Okta Super Administrators.",
        )
    except OktaApiError as exc:
        return failure("Error creating Super Administrators group", exc)

    if group_status == "created":
        emit("success", f"Created group {SUPER_ADMINS_GROUP}.", step="group")
    else:
        emit("info", f"Group {SUPER_ADMINS_GROUP} already exists.", step="group")

    data: dict[str, Any] = {"group": group, "status": group_status, "roleAssigned": False}
    roles_path = f"/api/v1/groups/{group['id']}/roles"
    try:
        roles = client.get(roles_path) or []
        has_role = any(role.get("type") == SUPER_ADMIN_ROLE for role in roles)
        if not has_role:
            emit("info", f"Assigning {SUPER_ADMIN_ROLE} role...", step="role")
            client.post(roles_path, {"type": SUPER_ADMIN_ROLE})
            data["roleAssigned"] = True
    except OktaApiError as exc:
        return failure(f"Group {group_status} but {SUPER_ADMIN_ROLE} role could not be ensured", exc, data)

    if group_status == "created":
        message = "Super Administrators group created and SUPER_ADMIN role assigned."
    elif has_role:
        message = "Super Administrators group already exists with SUPER_ADMIN role."
    else:
        message = "Super Administrators group exists, SUPER_ADMIN role assigned."
    return StepResult(success=True, message=message, data=data)


def populate_demo_users(config: ToolkitConfig, inputs: ScriptInputs, emit: Emit) -> StepResult:
    client = OktaClient.for_config(config)
    created: list[dict[str, Any]] = []
    skipped: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []

    for profile in build_demo_user_profiles():
        try:
            response = client.send(
                "POST",
                "/api/v1/users",
                payload={"profile": asdict(profile)},
                params={"activate": "true"},
            )
        except OktaApiError as exc:
            errors.append({"email": profile.email, "error": str(exc)})
            continue

        if response.ok:
            created.append({"email": profile.email, "id": (response.body or {}).get("id")})
            emit("success", f"Created {profile.email}", step="users")
            continue

        error = client.error_for("POST", "/api/v1/users", response)
        if response.status == 400 and error.already_exists:
            skipped.append({"email": profile.email, "reason": "; ".join(error.causes) or error.summary})
            emit("info", f"Skipped {profile.email} (already exists)", step="users")
        else:
            errors.append({"email": profile.email, "error": str(error)})
            emit("error", f"Failed to create {profile.email}: {error.summary}", step="users")

    return StepResult(
        success=not errors,
        message=(
            "Demo user population complete. "
            f"Created: {len(created)}, Skipped: {len(skipped)}, Errors: {len(errors)}."
        ),
        data={
            "createdCount": len(created),
            "skippedCount": len(skipped),
            "errorCount": len(errors),
            "created": created,
            "skipped": skipped,
            "errors": errors,
        },
    )


def create_standard_department_groups(
    config: ToolkitConfig, inputs: ScriptInputs, emit: Emit
) -> StepResult:
    client = OktaClient.for_config(config)
    results: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []

    for department in DEPARTMENT_GROUPS:
        try:
            group, group_status = find_or_create_group(
                client, department, f"{department} Department Group"
            )
            rule_status, rule_id = _ensure_department_rule(client, department, group["id"])
        except OktaApiError as exc:
            errors.append({"department": department, "error": str(exc)})
            emit("error", f"{department}: {exc.summary}", step=department)
            continue
        results.append(
            {
                "department": department,
                "groupId": group["id"],
                "group": group_status,
                "rule": rule_status,
                "ruleId": rule_id,
            }
        )
        emit("info", f"{department}: group {group_status}, rule {rule_status}", step=department)

    return StepResult(
        success=not errors,
        message=(
            "Department groups processing complete. "
            f"Created/Found: {len(results)}, Errors: {len(errors)}."
        ),
        data=batch_summary(results, errors),
    )


def _ensure_department_rule(
    client: OktaClient, department: str, group_id: str
) -> tuple[str, str | None]:
    payload = {
        "type": "group_rule",
        "name": f"Assign {department} Group",
        "conditions": {
            "expression": {
                "value": f'user.department == "{department}"',
                "type": "urn:okta:expression:1.0",
            }
        },
        "actions": {"assignUserToGroups": {"groupIds": [group_id]}},
    }
    try:
        rule = client.post("/api/v1/groups/rules", payload)
    except OktaApiError as exc:
        if exc.already_exists:
            return "exists", None
        raise
    if rule.get("status") == "INACTIVE":
        client.post(f"/api/v1/groups/rules/{rule['id']}/lifecycle/activate")
    return "created", rule.get("id")


def add_new_administrator(config: ToolkitConfig, inputs: ScriptInputs, emit: Emit) -> StepResult:
    first_name = input_text(inputs, "firstName")
    last_name = input_text(inputs, "lastName")
    email = input_text(inputs, "email")
    if not first_name or not last_name or not email:
        return StepResult(success=False, message="First name, last name, and email are required.")
    if not EMAIL_PATTERN.match(email):
        return StepResult(success=False, message="Invalid email format.")

    client = OktaClient.for_config(config)
    try:
        user = find_user(client, "profile.login", email)
        if user is None:
            emit("info", f"Creating user {email}...", step="user")
            user = client.post(
                "/api/v1/users",
                {"profile": {"firstName": first_name, "lastName": last_name, "email": email, "login": email}},
                params={"activate": "true"},
            )
            user_status = "created"
        else:
            emit("info", f"User {email} already exists.", step="user")
            user_status = "exists"
    except OktaApiError as exc:
        return failure("Failed to create user", exc)

    try:
        group = find_group(client, SUPER_ADMINS_GROUP)
    except OktaApiError as exc:
        return failure("User ready but failed to find Super Administrators group", exc, {"user": user})
    if group is None:
        return StepResult(
            success=False,
            message=(
                "User ready but Super Administrators group does not exist. "
                'Run "Create Super Administrators Group" script first.'
            ),
            data={"user": user, "status": user_status},
        )

    try:
        # Returns 204; adding an existing member is a no-op.
        client.put(f"/api/v1/groups/{group['id']}/users/{user['id']}")
    except OktaApiError as exc:
        return failure(
            "User ready but failed to add to Super Administrators group",
            exc,
            {"user": user, "group": group},
        )

    return StepResult(
        success=True,
        message=(
            f"Administrator {first_name} {last_name} ({email}) "
            f"{'created and ' if user_status == 'created' else ''}added to Super Administrators group."
        ),
        data={"user": user, "group": group, "status": user_status},
    )


def setup_realms(config: ToolkitConfig, inputs: ScriptInputs, emit: Emit) -> StepResult:
    client = OktaClient.for_config(config)
    try:
        realms = client.get("/api/v1/realms") or []
    except OktaApiError as exc:
        return failure("Error setting up realms", exc)

    names = {realm.get("profile", {}).get("name"): realm for realm in realms}
    results: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []

    default_realm = names.get("Default")
    if default_realm is not None:
        try:
            updated = client.put(f"/api/v1/realms/{default_realm['id']}", {"profile": {"name": "Employees"}})
            results.append({"action": "rename", "realm": "Employees", "status": "renamed", "id": (updated or {}).get("id")})
            emit("success", 'Renamed realm "Default" to "Employees".', step="Employees")
        except OktaApiError as exc:
            errors.append({"action": "rename", "realm": "Employees", "error": str(exc)})
    elif "Employees" in names:
        results.append({"action": "rename", "realm": "Employees", "status": "skipped", "message": 'Realm "Employees" already exists'})
    else:
        results.append({"action": "rename", "realm": "Employees", "status": "skipped", "message": 'Could not find "Default" realm to rename.'})
        emit("warn", 'Could not find "Default" realm to rename.', step="Employees")

    for realm_name in ("Partners", "Contractors"):
        if realm_name in names:
            results.append({"action": "create", "realm": realm_name, "status": "skipped", "message": "Realm already exists"})
            continue
        try:
            created = client.post("/api/v1/realms", {"profile": {"name": realm_name}})
        except OktaApiError as exc:
            if exc.already_exists:
                results.append({"action": "create", "realm": realm_name, "status": "skipped", "message": "Realm already exists"})
            else:
                errors.append({"action": "create", "realm": realm_name, "error": str(exc)})
            continue
        results.append({"action": "create", "realm": realm_name, "status": "created", "id": (created or {}).get("id")})
        emit("success", f'Created realm "{realm_name}".', step=realm_name)

    if errors:
        message = "Realms setup completed with errors: " + ", ".join(e["error"] for e in errors)
    else:
        message = "Realms setup successfully."
    return StepResult(success=not errors, message=message, data=batch_summary(results, errors))
