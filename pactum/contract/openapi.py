"""
OpenAPI 3.1.0 contract generation from request/response types.

Each ``Route`` pairs an HTTP method and path template with the request and
response dataclasses of its handler. ``ContractBuilder.build`` walks the
routes with one fresh ``SchemaRegistry`` so every named type lands once in
``components.schemas``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, List, Optional, Sequence

from ..config import EngineConfig, OpenAPISettings
from .classify import RequestShape, classify
from .codecs import CodecRegistry
from .markers import BindingSource, Stream
from .metadata import extract, find_field, is_void, unwrap_annotated, unwrap_optional
from .schema import SchemaRegistry

logger = logging.getLogger("pactum.openapi")

OPENAPI_VERSION = "3.1.0"

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


# ─── Route Declaration ───────────────────────────────────────────────────────

@dataclass
class Route:
    """
    One documented operation.

    ``errors`` lists extra error statuses on top of the 400/500 (and 404
    for templated paths) every operation gets.
    """
    method: str
    path: str
    request_type: Any = None
    response_type: Any = None
    status: int = 0
    summary: str = ""
    description: str = ""
    tags: List[str] = field(default_factory=list)
    deprecated: bool = False
    errors: List[int] = field(default_factory=list)
    operation_id: str = ""
    security: Optional[List[str]] = None

    def __post_init__(self):
        self.method = self.method.upper()


# ─── Operation IDs ───────────────────────────────────────────────────────────

def _capitalize(part: str) -> str:
    return part[:1].upper() + part[1:]


def generate_operation_id(method: str, path: str) -> str:
    """
    Derive an operation id from method and path template.

    ``GET /v1/users/{id}`` becomes ``getV1UsersById``.
    """
    pieces = [method.lower()]
    for part in path.split("/"):
        if not part:
            continue
        if part.startswith("{") and part.endswith("}"):
            name = part[1:-1]
            if name.endswith("..."):
                name = name[:-3]
            pieces.append("By" + _capitalize(name))
            continue
        pieces.append(_capitalize(part))
    return "".join(pieces)


def to_openapi_path(path: str) -> str:
    """Strip wildcard suffixes: ``/files/{rest...}`` -> ``/files/{rest}``."""
    return path.replace("...", "")


# ─── Main Builder ────────────────────────────────────────────────────────────

class ContractBuilder:
    """
    OpenAPI 3.1.0 document builder.

    Usage::

        builder = ContractBuilder(EngineConfig(openapi=OpenAPISettings(title="Users")))
        document = builder.build([
            Route("GET", "/v1/users/{id}", GetUser, User),
            Route("POST", "/v1/users", CreateUser, User, status=201),
        ])
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    @property
    def settings(self) -> OpenAPISettings:
        return self.config.openapi

    def build(self, routes: Sequence[Route]) -> Dict[str, Any]:
        """Generate the full document. Each call uses a fresh registry."""
        registry = SchemaRegistry()
        registry.register_problem()

        paths: Dict[str, Dict[str, Any]] = {}
        for route in routes:
            path = to_openapi_path(route.path)
            operation = self._build_operation(route, registry)
            paths.setdefault(path, {})[route.method.lower()] = operation
            logger.debug("Documented %s %s as %s", route.method, path, operation["operationId"])

        document: Dict[str, Any] = {
            "openapi": OPENAPI_VERSION,
            "info": self._build_info(),
            "paths": paths,
        }

        if self.settings.servers:
            document["servers"] = list(self.settings.servers)

        if self.settings.security:
            document["security"] = [{name: []} for name in self.settings.security]

        if self.settings.tags:
            document["tags"] = [
                {"name": name, "description": self.settings.tags[name]}
                for name in sorted(self.settings.tags)
            ]

        components: Dict[str, Any] = {"schemas": registry.definitions}
        if self.settings.security_schemes:
            components["securitySchemes"] = dict(self.settings.security_schemes)
        document["components"] = components

        return document

    # ── Info ──────────────────────────────────────────────────────────────

    def _build_info(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            "title": self.settings.title,
            "version": self.settings.version,
        }
        if self.settings.description:
            info["description"] = self.settings.description
        return info

    # ── Operations ────────────────────────────────────────────────────────

    def _build_operation(self, route: Route, registry: SchemaRegistry) -> Dict[str, Any]:
        operation: Dict[str, Any] = {
            "operationId": route.operation_id or generate_operation_id(route.method, route.path),
        }
        if route.summary:
            operation["summary"] = route.summary
        if route.description:
            operation["description"] = route.description
        if route.tags:
            operation["tags"] = list(route.tags)
        if route.deprecated:
            operation["deprecated"] = True
        if route.security is not None:
            # An empty list opts the operation out of document-level security.
            operation["security"] = [{name: []} for name in route.security]

        if not is_void(route.request_type):
            parameters = self._build_parameters(route.request_type, registry)
            if parameters:
                operation["parameters"] = parameters
            request_body = self._build_request_body(route, registry)
            if request_body is not None:
                operation["requestBody"] = request_body

        operation["responses"] = self._build_responses(route, registry)
        return operation

    def _build_parameters(self, tp: Any, registry: SchemaRegistry) -> List[Dict[str, Any]]:
        parameters = []
        for desc in extract(tp):
            if not desc.is_param:
                continue
            schema = registry.parameter_schema(desc.type)
            schema.update(desc.constraints.to_schema())
            parameter: Dict[str, Any] = {
                "name": desc.wire_name,
                "in": desc.source.value,
            }
            if desc.doc:
                parameter["description"] = desc.doc
            if desc.required or desc.source is BindingSource.PATH:
                parameter["required"] = True
            parameter["schema"] = schema
            parameters.append(parameter)
        return parameters

    def _build_request_body(self, route: Route, registry: SchemaRegistry) -> Optional[Dict[str, Any]]:
        shape = classify(route.request_type)

        if shape is RequestShape.MULTIPART_FORM:
            return {
                "required": True,
                "content": {"multipart/form-data": {"schema": self._form_schema(route.request_type, registry)}},
            }

        if shape is RequestShape.PARAMS_PLUS_BODY:
            body = find_field(route.request_type, BindingSource.BODY)
            return {
                "required": True,
                "content": {"application/json": {"schema": registry.type_to_schema(body.type)}},
            }

        if shape is RequestShape.WHOLE_BODY and route.method in _BODY_METHODS:
            return {
                "required": True,
                "content": {"application/json": {"schema": registry.type_to_schema(route.request_type)}},
            }

        return None

    def _form_schema(self, tp: Any, registry: SchemaRegistry) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}
        required: List[str] = []
        for desc in extract(tp):
            if desc.source is not BindingSource.FORM:
                continue
            prop = registry.type_to_schema(desc.type)
            if desc.doc:
                prop["description"] = desc.doc
            prop.update(desc.constraints.to_schema())
            properties[desc.wire_name] = prop
            if desc.required:
                required.append(desc.wire_name)
        schema: Dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        return schema

    def _build_responses(self, route: Route, registry: SchemaRegistry) -> Dict[str, Any]:
        responses: Dict[str, Any] = {}
        status = route.status or 200
        response_type, _ = unwrap_optional(unwrap_annotated(route.response_type)[0])

        if is_void(response_type):
            if status == 200:
                status = 204
            responses[str(status)] = {"description": "No content"}
        elif isinstance(response_type, type) and issubclass(response_type, Stream):
            responses[str(status)] = {
                "description": "Successful response",
                "content": {"application/octet-stream": {}},
            }
        else:
            schema = registry.type_to_schema(response_type)
            responses[str(status)] = {
                "description": "Successful response",
                "content": {content_type: {"schema": schema} for content_type in self._response_types()},
            }

        error_codes = {400, 500}
        if "{" in route.path:
            error_codes.add(404)
        error_codes.update(route.errors)

        problem_ref = registry.register_problem()
        for code in sorted(error_codes):
            responses[str(code)] = {
                "description": _status_text(code),
                "content": {"application/problem+json": {"schema": dict(problem_ref)}},
            }
        return responses

    def _response_types(self) -> List[str]:
        return CodecRegistry.from_config(self.config).content_types


def _status_text(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return f"Error {code}"
