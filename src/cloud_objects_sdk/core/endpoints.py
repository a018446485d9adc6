"""Endpoint construction for cloud object operations.

Maps a logical operation and its parameters to the concrete request:
URL, query string and body. GET requests cannot carry a body, so their
payload is canonicalized and moved into the query string, which keeps
equal payloads producing equal (cacheable) URLs.
"""

from __future__ import annotations

import base64
import json
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from ..config import ClientConfig
    from ..models import CloudObjectRequest


class Operation(StrEnum):
    """Logical cloud object operations."""

    INSTANCE = "INSTANCE"
    CALL = "CALL"
    STATIC_CALL = "STATIC_CALL"
    STATE = "STATE"
    LIST = "LIST"


_PREFIXES: dict[Operation, str] = {
    Operation.INSTANCE: "INSTANCE",
    Operation.CALL: "CALL",
    Operation.STATIC_CALL: "CALL",
    Operation.STATE: "STATE",
    Operation.LIST: "LIST",
}


class PreparedRequest(BaseModel):
    """Concrete request ready for the transport."""

    model_config = ConfigDict(frozen=True)

    url: str
    method: str
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, str] = Field(default_factory=dict)
    body: Any = None


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def canonicalize(value: Any) -> Any:
    """Deep-sort mappings by key and arrays by the canonical form of their items.

    The result is independent of the original key and element order, and
    canonicalizing it again returns an equal value.
    """
    if isinstance(value, dict):
        return {key: canonicalize(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        items = [canonicalize(item) for item in value]
        return sorted(items, key=_dumps)
    return value


def encode_query_body(body: Any) -> str:
    """Serialize a GET payload for the ``data`` query parameter."""
    return base64.b64encode(_dumps(canonicalize(body)).encode("utf-8")).decode("ascii")


class EndpointResolver:
    """Builds request targets for a project."""

    def __init__(self, config: ClientConfig) -> None:
        self.config = config

    def build_url(self, path: str) -> str:
        """Absolute URL of a project-relative path."""
        if not path.startswith("/"):
            path = f"/{path}"
        return f"https://{self.config.host}/{self.config.project_id}{path}"

    def resolve(self, operation: Operation, request: CloudObjectRequest) -> str:
        """Map an operation to its URL.

        Args:
            operation: Logical operation.
            request: Operation parameters.

        Returns:
            Absolute request URL.
        """
        segments = [_PREFIXES[operation], request.class_id]

        if operation is Operation.INSTANCE:
            if request.key is not None:
                segments.append(f"{request.key.name}!{request.key.value}")
            elif request.instance_id:
                segments.append(request.instance_id)

        elif operation is Operation.STATE:
            if request.instance_id:
                segments.append(request.instance_id)

        elif operation in (Operation.CALL, Operation.STATIC_CALL):
            if not request.method:
                msg = f"{operation.value} requires a method name"
                raise ValueError(msg)
            segments.append(request.method)
            if request.instance_id:
                segments.append(request.instance_id)
            if request.path_params:
                segments.append(request.path_params.strip("/"))

        return self.build_url("/" + "/".join(segments))

    def query_params(self, params: dict[str, str] | None = None) -> dict[str, str]:
        """Caller params plus culture and platform defaults."""
        query = dict(params or {})
        query.setdefault("__culture", self.config.culture)
        if self.config.platform:
            query.setdefault("__platform", self.config.platform)
        return query

    def prepare(self, operation: Operation, request: CloudObjectRequest) -> PreparedRequest:
        """Build the transport request for an operation."""
        method = request.http_method.upper()
        params = self.query_params(request.query_params)
        body = request.body

        if method == "GET" and body is not None and request.base64_encode:
            params["data"] = encode_query_body(body)
            params["__isbase64"] = "true"
            body = None

        return PreparedRequest(
            url=self.resolve(operation, request),
            method=method,
            headers=dict(request.headers),
            params=params,
            body=body,
        )
