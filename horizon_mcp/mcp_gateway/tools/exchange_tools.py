"""The ``exchange`` tool: validates resource actions and routes them to Exchange endpoints."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from horizon_mcp.clients.exchange import ExchangeClient
from horizon_mcp.core.types import (
    Action,
    ErrorCode,
    PolicyType,
    ResourceResponse,
    Target,
    ToolInputError,
)

_tools_log = logging.getLogger("horizon_mcp.mcp_gateway.tools.exchange")

# Fields each action must carry before it is dispatched.
REQUIRED_FIELDS: dict[Action, tuple[str, ...]] = {
    Action.LIST: (),
    Action.DETAILS: ("name",),
    Action.CREATE: ("data",),
    Action.DELETE: ("name",),
    Action.STATUS: ("name",),
}


def _parse_enum(enum_cls: type[Enum], value: Any, code: ErrorCode, label: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(repr(member.value) for member in enum_cls)
        raise ToolInputError(code, f"{label}: {value!r}. Must be one of {allowed}.") from None


def _blank_to_none(value: Any) -> Any:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    return value


@dataclass(frozen=True)
class ResourceActionRequest:
    action: Action
    target: Target
    policy_type: PolicyType | None = None
    name: str | None = None
    data: Any = None

    @classmethod
    def from_arguments(cls, arguments: dict[str, Any]) -> "ResourceActionRequest":
        """Validate raw tool arguments and return a normalized request.

        Accepts ``policyType`` (the published schema) or ``policy_type``.
        Raises ``ToolInputError`` for unknown enum values or missing fields.
        """
        action = _parse_enum(Action, arguments.get("action"), ErrorCode.UNKNOWN_ACTION, "Unknown action")
        target = _parse_enum(
            Target, arguments.get("target"), ErrorCode.INVALID_TARGET, "Invalid target type"
        )
        raw_policy_type = _blank_to_none(arguments.get("policyType")) or _blank_to_none(
            arguments.get("policy_type")
        )
        policy_type = (
            None
            if raw_policy_type is None
            else _parse_enum(
                PolicyType, raw_policy_type, ErrorCode.INVALID_TARGET, "Invalid policy type"
            )
        )
        name = _blank_to_none(arguments.get("name"))
        request = cls(
            action=action,
            target=target,
            policy_type=policy_type,
            name=str(name) if name is not None else None,
            data=arguments.get("data"),
        )
        request.validate()
        return request.normalized()

    def validate(self) -> None:
        for field_name in REQUIRED_FIELDS[self.action]:
            if getattr(self, field_name) is None:
                raise ToolInputError(
                    ErrorCode.MISSING_PARAMETER,
                    f"{field_name.capitalize()} is required for {self.action.value} action",
                )

    def normalized(self) -> "ResourceActionRequest":
        """Coerce ``target`` to policy whenever a policy type is present."""
        if self.policy_type is None or self.target is Target.POLICY:
            return self
        _tools_log.info(
            "target_corrected policy_type=%s target=%s corrected_target=policy",
            self.policy_type.value,
            self.target.value,
            extra={"policy_type": self.policy_type.value, "target": self.target.value},
        )
        return replace(self, target=Target.POLICY)


class EndpointCategory(str, Enum):
    NODE_COLLECTION = "node_collection"
    SERVICE_COLLECTION = "service_collection"
    POLICY_COLLECTION = "policy_collection"
    NODE_DETAILS_COLLECTION = "node_details_collection"
    SERVICE_DETAILS = "service_details"
    NODE_POLICY = "node_policy"
    BUSINESS_POLICY = "business_policy"
    SERVICE_POLICY = "service_policy"
    NODE_STATUS = "node_status"
    ACKNOWLEDGMENT = "acknowledgment"


@dataclass(frozen=True)
class Endpoint:
    category: EndpointCategory
    segments: tuple[str, ...] = ()

    @property
    def is_remote(self) -> bool:
        return self.category is not EndpointCategory.ACKNOWLEDGMENT


_ACKNOWLEDGMENT = Endpoint(EndpointCategory.ACKNOWLEDGMENT)
_POLICY_COLLECTION = Endpoint(EndpointCategory.POLICY_COLLECTION, ("business", "policies"))


def _resolve_list(request: ResourceActionRequest) -> Endpoint:
    if request.target is Target.NODE:
        return Endpoint(EndpointCategory.NODE_COLLECTION, ("nodes",))
    if request.target is Target.SERVICE:
        return Endpoint(EndpointCategory.SERVICE_COLLECTION, ("services",))
    # A named node-policy "list" is a single-item lookup.
    if request.policy_type is PolicyType.NODE and request.name:
        return Endpoint(EndpointCategory.NODE_POLICY, ("nodes", request.name, "policy"))
    return _POLICY_COLLECTION


def _resolve_details(request: ResourceActionRequest) -> Endpoint:
    name = request.name or ""
    if request.target is Target.SERVICE:
        return Endpoint(EndpointCategory.SERVICE_DETAILS, ("services", name))
    if request.target is Target.NODE:
        # Node details are only exposed as a collection; the name is not a path parameter.
        return Endpoint(EndpointCategory.NODE_DETAILS_COLLECTION, ("node-details",))
    if request.policy_type is PolicyType.NODE:
        return Endpoint(EndpointCategory.NODE_POLICY, ("nodes", name, "policy"))
    if request.policy_type is PolicyType.SERVICE:
        return Endpoint(EndpointCategory.BUSINESS_POLICY, ("business", "policies", name))
    if request.policy_type is PolicyType.DEPLOYMENT:
        return Endpoint(EndpointCategory.SERVICE_POLICY, ("services", name, "policy"))
    return _POLICY_COLLECTION


def _resolve_status(request: ResourceActionRequest) -> Endpoint:
    if request.target is Target.NODE:
        return Endpoint(EndpointCategory.NODE_STATUS, ("nodes", request.name or "", "status"))
    return _ACKNOWLEDGMENT


_RESOLVERS: dict[Action, Callable[[ResourceActionRequest], Endpoint]] = {
    Action.LIST: _resolve_list,
    Action.DETAILS: _resolve_details,
    Action.CREATE: lambda _request: _ACKNOWLEDGMENT,
    Action.DELETE: lambda _request: _ACKNOWLEDGMENT,
    Action.STATUS: _resolve_status,
}


def resolve_endpoint(request: ResourceActionRequest) -> Endpoint:
    """Map a validated request to its Exchange endpoint (pure, no I/O)."""
    normalized = request.normalized()
    return _RESOLVERS[normalized.action](normalized)


class ExchangeTools:
    """Dispatches ``exchange`` tool calls to the five resource operations."""

    def __init__(self, client: ExchangeClient) -> None:
        self.client = client
        self._handlers: dict[Action, Callable[[ResourceActionRequest], ResourceResponse]] = {
            Action.LIST: self.list_resources,
            Action.DETAILS: self.get_resource_details,
            Action.CREATE: self.create_resource,
            Action.DELETE: self.delete_resource,
            Action.STATUS: self.get_resource_status,
        }

    def handle(
        self,
        action: str,
        target: str,
        name: str | None = None,
        policy_type: str | None = None,
        data: Any = None,
    ) -> ResourceResponse:
        return self.call(
            {
                "action": action,
                "target": target,
                "name": name,
                "policyType": policy_type,
                "data": data,
            }
        )

    def call(self, arguments: dict[str, Any]) -> ResourceResponse:
        """Validate ``arguments`` and run the matching operation."""
        try:
            request = ResourceActionRequest.from_arguments(arguments)
        except ToolInputError as e:
            _tools_log.info(
                "exchange_rejected code=%s error=%s",
                e.code.value,
                e.message,
                extra={"error_code": e.code.value, "error": e.message},
            )
            return ResourceResponse.error(e.code, e.message)

        _tools_log.info(
            "exchange_call action=%s target=%s policy_type=%s name=%s",
            request.action.value,
            request.target.value,
            request.policy_type.value if request.policy_type else None,
            request.name,
            extra={"action": request.action.value, "target": request.target.value},
        )
        return self._handlers[request.action](request)

    def _fetch(self, endpoint: Endpoint) -> ResourceResponse:
        url = self.client.url_for(*endpoint.segments)
        _tools_log.debug("exchange_fetch category=%s url=%s", endpoint.category.value, url)
        return self.client.fetch(url)

    def list_resources(self, request: ResourceActionRequest) -> ResourceResponse:
        return self._fetch(resolve_endpoint(request))

    def get_resource_details(self, request: ResourceActionRequest) -> ResourceResponse:
        return self._fetch(resolve_endpoint(request))

    def create_resource(self, request: ResourceActionRequest) -> ResourceResponse:
        # TODO: wire to the Exchange write endpoints (PUT/POST per target) once the
        # payload mapping for services and policies is agreed.
        _tools_log.debug("exchange_create target=%s", request.target.value)
        return ResourceResponse.acknowledgment(
            f"Created {request.target.value} with provided data"
        )

    def delete_resource(self, request: ResourceActionRequest) -> ResourceResponse:
        _tools_log.debug("exchange_delete target=%s name=%s", request.target.value, request.name)
        return ResourceResponse.acknowledgment(
            f"Deleted {request.target.value} named {request.name}"
        )

    def get_resource_status(self, request: ResourceActionRequest) -> ResourceResponse:
        endpoint = resolve_endpoint(request)
        if endpoint.is_remote:
            return self._fetch(endpoint)
        return ResourceResponse.acknowledgment(
            f"Status for {request.target.value} named {request.name}"
        )


TOOL_NAME = "exchange"

TOOL_DESCRIPTION = """Use this tool to manage Open Horizon Exchange resources such as services, nodes, and policies (node policies, service policies, deployment policies).

IMPORTANT: Set target: "policy" for ALL policy-related actions.
- NEVER set target to "node", "service", or "deployment" for policy actions.
- Use policyType to specify the kind of policy: "node", "service" or "deployment".

Valid actions:
- "list": List resources (policyType optional, omit name)
- "details": Show details for a specific resource (name required)
- "create": Create a resource (data required)
- "delete": Delete a specific resource (name required)
- "status": Get the status of a specific resource (name required)

Targets (always singular, even if the user asks for "nodes" or "services"):
- "node" for node details or status, e.g. "get all nodes" -> target: "node", action: "list"
- "service" for services, e.g. "show details of service X" -> target: "service", action: "details"
- "policy" for any kind of policy, with policyType set:
    "deployment policy" -> policyType: "deployment"
    "node policy" -> policyType: "node"
    "service policy" -> policyType: "service"
  Do NOT set target = "service" even if the word "service" appears in a policy name.
- Omit policyType entirely for service or node queries.

Name extraction:
- Always extract the full value of "name" when the prompt mentions a specific entity,
  e.g. "policy-chunk-saved-model-service_arm64". Names may contain hyphens, underscores,
  dots and versions ("1.0.0"). Look for "named <name>", "called <name>" or quoted values.
- Do not truncate or simplify names.

Examples:
- exchange(action: "list", target: "policy")
- exchange(action: "list", target: "policy", policyType: "deployment")
- exchange(action: "details", target: "policy", policyType: "node", name: "witty-anoa")
- exchange(action: "delete", target: "policy", policyType: "service", name: "weather-policy")
- exchange(action: "create", target: "policy", policyType: "node", name: "my-policy", data: { ... })
- "Get the node policy called edge-policy-123"
    -> { target: "policy", policyType: "node", action: "details", name: "edge-policy-123" }
"""

TOOL_SPEC: dict[str, Any] = {
    "name": TOOL_NAME,
    "description": TOOL_DESCRIPTION,
    "input_schema": {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": [action.value for action in Action],
                "description": "The operation to perform: list, details, create, delete, or status",
            },
            "target": {
                "type": "string",
                "enum": [target.value for target in Target],
                "description": "The type of resource to operate on",
            },
            "policyType": {
                "type": ["string", "null"],
                "enum": [policy_type.value for policy_type in PolicyType] + [None],
                "description": 'If target is "policy", specify which kind of policy',
            },
            "name": {
                "type": "string",
                "description": (
                    "Name of the resource; required for details, delete and status"
                ),
            },
            "data": {
                "description": "JSON payload for create actions",
            },
        },
        "required": ["action", "target"],
    },
    "annotations": {
        "title": "Open Horizon Exchange",
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": False,
        "openWorldHint": True,
    },
}
