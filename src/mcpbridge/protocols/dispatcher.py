"""ToolDispatcher — resolves a tool call and drives it through its state machine.

Every invocation moves ``RECEIVED → VALIDATED → EXECUTING`` and ends in
``SUCCEEDED`` or ``FAILED``.  Tool-level failures never escape
:meth:`ToolDispatcher.dispatch`; they are recorded on the returned
:class:`Invocation` and rendered as a JSON-RPC error object by the server.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from mcpbridge.core.schema import validate_arguments
from mcpbridge.protocols.errors import BridgeError, InternalToolError
from mcpbridge.protocols.mcp.models import CallToolResult
from mcpbridge.utils.telemetry import (
    ATTR_INVOCATION_STATE,
    ATTR_SERVICE,
    ATTR_TOOL_NAME,
    get_tracer,
    mark_failed,
)

if TYPE_CHECKING:
    from mcpbridge.protocols.mcp.models import ToolDescriptor
    from mcpbridge.protocols.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


class InvocationState(str, enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[InvocationState, frozenset[InvocationState]] = {
    InvocationState.RECEIVED: frozenset({InvocationState.VALIDATED, InvocationState.FAILED}),
    InvocationState.VALIDATED: frozenset({InvocationState.EXECUTING, InvocationState.FAILED}),
    InvocationState.EXECUTING: frozenset({InvocationState.SUCCEEDED, InvocationState.FAILED}),
    InvocationState.SUCCEEDED: frozenset(),
    InvocationState.FAILED: frozenset(),
}


@dataclass
class Invocation:
    """The record of a single tool call attempt."""

    tool: str
    arguments: Any
    state: InvocationState = InvocationState.RECEIVED
    result: CallToolResult | None = None
    error: BridgeError | None = None
    history: list[InvocationState] = field(default_factory=lambda: [InvocationState.RECEIVED])
    started: float = field(default_factory=time.perf_counter)
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state is InvocationState.SUCCEEDED

    def advance(self, state: InvocationState) -> None:
        if state not in _TRANSITIONS[self.state]:
            msg = f"Illegal invocation transition {self.state.value} -> {state.value}"
            raise RuntimeError(msg)
        self.state = state
        self.history.append(state)
        if state in (InvocationState.SUCCEEDED, InvocationState.FAILED):
            self.elapsed = time.perf_counter() - self.started

    def fail(self, error: BridgeError) -> Invocation:
        self.error = error
        self.advance(InvocationState.FAILED)
        return self

    def succeed(self, result: CallToolResult) -> Invocation:
        self.result = result
        self.advance(InvocationState.SUCCEEDED)
        return self


class ToolDispatcher:
    """Routes ``tools/call`` requests to registered handlers.

    Usage::

        dispatcher = ToolDispatcher(registry, ToolContext(config_store=store))
        invocation = await dispatcher.dispatch("get_star_count", {"owner": "o", "repo": "r"})
        if invocation.succeeded:
            envelope = invocation.result
    """

    def __init__(self, registry: ToolRegistry, context: ToolContext) -> None:
        self._registry = registry
        self._context = context

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def context(self) -> ToolContext:
        return self._context

    def list_tools(self) -> list[ToolDescriptor]:
        return self._registry.descriptors()

    async def dispatch(self, name: str, arguments: Any = None) -> Invocation:
        """Run one invocation to a terminal state.  No retries."""
        invocation = Invocation(tool=name, arguments=arguments)
        with _tracer.start_as_current_span("mcpbridge.tool.call") as span:
            span.set_attribute(ATTR_TOOL_NAME, name)
            span.set_attribute(ATTR_SERVICE, self._context.service)
            await self._run(invocation)
            span.set_attribute(ATTR_INVOCATION_STATE, invocation.state.value)
            if invocation.error is not None:
                mark_failed(span, invocation.error)

        if invocation.error is not None:
            logger.error("Tool %s failed: %s", name, invocation.error.message)
        else:
            logger.debug("Tool %s succeeded in %.3fs", name, invocation.elapsed)
        return invocation

    async def dispatch_all(self, calls: list[tuple[str, Any]]) -> list[Invocation]:
        """Dispatch several calls concurrently; each is independent."""
        return list(await asyncio.gather(*[self.dispatch(name, args) for name, args in calls]))

    async def _run(self, invocation: Invocation) -> Invocation:
        try:
            tool = self._registry.get(invocation.tool)
            request = validate_arguments(tool.name, tool.request_model, invocation.arguments)
        except BridgeError as exc:
            return invocation.fail(exc)
        invocation.advance(InvocationState.VALIDATED)

        invocation.advance(InvocationState.EXECUTING)
        try:
            response = await tool.handler(request, self._context)
        except BridgeError as exc:
            return invocation.fail(exc)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error in tool %s", tool.name)
            return invocation.fail(InternalToolError(tool.name, str(exc) or type(exc).__name__))

        try:
            envelope = self._wrap(response)
        except Exception as exc:
            return invocation.fail(InternalToolError(tool.name, f"cannot serialize result: {exc}"))
        return invocation.succeed(envelope)

    @staticmethod
    def _wrap(response: BaseModel | CallToolResult) -> CallToolResult:
        """Serialize a typed response into exactly one JSON content item."""
        if isinstance(response, CallToolResult):
            return response
        return CallToolResult.from_json(response.model_dump(mode="json"))
