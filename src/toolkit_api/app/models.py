"""Pydantic models shared across API, executor, workflows, and the stream consumer.

Wire payloads use camelCase field names (``orgUrl``, ``workflowId``) so the
models declare aliases and accept either spelling on input.
"""

from __future__ import annotations

from typing import Any, Literal, Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

LogLevel = Literal["info", "success", "warn", "error"]
ScriptInputs = dict[str, str | list[str]]


class ToolkitConfig(BaseModel):
    """Caller-supplied credential bundle. Read-only for the whole run."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    org_url: str = Field(default="", alias="orgUrl")
    api_token: str = Field(default="", alias="apiToken")
    # OAuth service app credentials, only needed by governance scripts.
    client_id: str | None = Field(default=None, alias="clientId")
    private_key: str | None = Field(default=None, alias="privateKey")
    key_id: str | None = Field(default=None, alias="keyId")

    def has_oauth_credentials(self) -> bool:
        return bool(self.client_id and self.private_key and self.key_id)


class StepResult(BaseModel):
    """Outcome of one script invocation."""

    model_config = ConfigDict(frozen=True)

    success: bool
    # Always populated, even on success.
    message: str
    data: Any | None = None


class LogEvent(BaseModel):
    """One progress frame on the run stream."""

    level: LogLevel
    message: str
    # Milliseconds since epoch, stamped by the executor.
    timestamp: int
    step: str | None = None
    done: bool = False
    result: StepResult | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class RunRequest(BaseModel):
    """Request body for POST /scripts/run."""

    model_config = ConfigDict(populate_by_name=True)

    workflow_id: str = Field(
        default="",
        validation_alias=AliasChoices("workflowId", "scriptId", "workflow_id"),
        serialization_alias="workflowId",
    )
    config: ToolkitConfig = Field(default_factory=ToolkitConfig)
    inputs: ScriptInputs = Field(default_factory=dict)

    @field_validator("inputs", mode="before")
    @classmethod
    def _drop_empty_inputs(cls, value: Any) -> Any:
        # Form clients send unset optional fields as null.
        if isinstance(value, dict):
            return {key: item for key, item in value.items() if item is not None}
        if value is None:
            return {}
        return value


class CredentialsRequest(BaseModel):
    """Request body for the connection-test and lookup routes."""

    model_config = ConfigDict(populate_by_name=True)

    org_url: str = Field(default="", alias="orgUrl")
    api_token: str = Field(default="", alias="apiToken")


class InputField(BaseModel):
    name: str
    label: str
    required: bool = False
    multiple: bool = False
    placeholder: str | None = None


class ScriptSummary(BaseModel):
    """Registry entry as served by GET /scripts."""

    id: str
    name: str
    description: str
    category: str
    requires_oauth: bool = Field(default=False, serialization_alias="requiresOAuth")
    input_fields: list[InputField] = Field(default_factory=list, serialization_alias="inputFields")


class Emit(Protocol):
    """Progress callback handed to every script handler."""

    def __call__(self, level: LogLevel, message: str, *, step: str | None = None) -> None: ...
