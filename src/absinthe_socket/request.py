"""Request definitions.

A request is the value identity of one logical GraphQL operation: the
operation text plus its variables. Equal requests share a single notifier.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from .errors import FormatError

_OPERATION_TYPE_RE = re.compile(r"^\s*(query|mutation|subscription|\{)")


class OperationType(str, Enum):
    """GraphQL operation kinds."""

    QUERY = "query"
    MUTATION = "mutation"
    SUBSCRIPTION = "subscription"


def get_operation_type(operation: str) -> OperationType:
    """Derive the operation type from the leading keyword of the operation text.

    An anonymous shorthand query ("{ ... }") is a query.

    Raises:
        FormatError: If the text starts with none of the known keywords
    """
    matched = _OPERATION_TYPE_RE.match(operation)
    if not matched:
        raise FormatError(operation)

    keyword = matched.group(1)
    return OperationType.QUERY if keyword == "{" else OperationType(keyword)


class Request(BaseModel):
    """An operation to send over the socket.

    Example:
        Request(
            operation="subscription userSubscription($userId: ID!) { user(userId: $userId) { id } }",
            variables={"userId": 10},
        )
    """

    model_config = ConfigDict(frozen=True)

    operation: str
    variables: dict[str, Any] | None = None

    @property
    def key(self) -> tuple[str, str]:
        """Hashable identity used to index notifiers."""
        variables = json.dumps(self.variables, sort_keys=True, default=str)
        return (self.operation, variables)

    @property
    def operation_type(self) -> OperationType:
        return get_operation_type(self.operation)

    def to_payload(self) -> dict[str, Any]:
        """Payload of the "doc" message."""
        if self.variables is not None:
            return {"query": self.operation, "variables": self.variables}
        return {"query": self.operation}
