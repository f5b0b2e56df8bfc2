"""Sequential execution of the tool calls requested in one model turn."""

import asyncio
from pathlib import Path
from typing import Any

from coworkbot.broker import ConfirmationBroker
from coworkbot.config import ToolsConfig
from coworkbot.content import Stage, ToolCallRecord, ToolResultBlock, ToolUseBlock, WorkMode
from coworkbot.events import EventDispatcher, EventType
from coworkbot.logging import get_logger
from coworkbot.permissions import PathAuthority, PermissionStore
from coworkbot.state import ConversationState
from coworkbot.tools.registry import ToolContext, ToolRegistry

log = get_logger(__name__)

DENIED_MESSAGE = "User denied the execution of tool '{name}'. Do not retry it unless the user asks."
INVALID_INPUT_MESSAGE = "Error: invalid tool input for '{name}': {error}. Raw arguments: {raw}"
CANCELLED_MESSAGE = "Tool call skipped: the request was cancelled by the user."


def permission_path(args: dict[str, Any]) -> str | None:
    """Path a tool call acts on, used by the permission gate."""
    for key in ("path", "cwd"):
        value = args.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class ToolExecutor:
    """Runs tool calls one at a time, in call order.

    Failures of individual tools never escape: each call produces a
    ToolResultBlock, with ``is_error`` set on denial or failure.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        state: ConversationState,
        broker: ConfirmationBroker,
        dispatcher: EventDispatcher,
        permission_store: PermissionStore,
        path_authority: PathAuthority,
        tools_config: ToolsConfig | None = None,
        base_path: Path | str | None = None,
    ):
        self.registry = registry
        self.state = state
        self.broker = broker
        self.dispatcher = dispatcher
        self.permission_store = permission_store
        self.path_authority = path_authority
        self.tools_config = tools_config or ToolsConfig()
        self.base_path = Path(base_path or Path.cwd()).expanduser().resolve()
        self.records: list[ToolCallRecord] = []

    async def execute_tools(
        self,
        calls: list[ToolUseBlock],
        mode: WorkMode | str,
        cancel_event: asyncio.Event | None = None,
    ) -> list[ToolResultBlock]:
        """Run every call in order; calls reached after cancellation are skipped."""
        self.records = []
        results: list[ToolResultBlock] = []
        for call in calls:
            results.append(await self.execute_one(call, mode, cancel_event))
        return results

    def requires_confirmation(self, call: ToolUseBlock) -> bool:
        if call.name not in self.tools_config.require_confirmation:
            return False
        path = permission_path(call.input)
        if self.permission_store.is_preapproved(call.name, path):
            return False
        if (
            path
            and call.name in self.tools_config.path_authorized_tools
            and self.path_authority.is_path_authorized(path)
        ):
            return False
        return True

    async def execute_one(
        self,
        call: ToolUseBlock,
        mode: WorkMode | str,
        cancel_event: asyncio.Event | None = None,
    ) -> ToolResultBlock:
        record = ToolCallRecord(call_id=call.id, name=call.name)
        self.records.append(record)
        self.dispatcher.emit(
            EventType.TOOL_CALL_STARTED,
            {"callId": call.id, "name": call.name, "input": dict(call.input)},
        )
        self.state.set_stage(Stage.EXECUTING, {"tool": call.name, "toolUseId": call.id})

        try:
            result = await self._run(call, record, mode, cancel_event)
        except asyncio.CancelledError:
            record.status = "error"
            record.error = "cancelled"
            raise
        finally:
            payload: dict[str, Any] = {"callId": call.id, "name": call.name, "status": record.status}
            if record.error:
                payload["error"] = record.error
            self.dispatcher.emit(EventType.TOOL_CALL_FINISHED, payload)
        return result

    async def _run(
        self,
        call: ToolUseBlock,
        record: ToolCallRecord,
        mode: WorkMode | str,
        cancel_event: asyncio.Event | None,
    ) -> ToolResultBlock:
        if cancel_event is not None and cancel_event.is_set():
            record.status = "error"
            record.error = "cancelled"
            return ToolResultBlock(tool_use_id=call.id, content=CANCELLED_MESSAGE, is_error=True)

        if call.has_input_error:
            record.status = "error"
            record.error = str(call.input["error"])
            log.warning("Rejected tool call with invalid input", tool=call.name, call_id=call.id)
            return ToolResultBlock(
                tool_use_id=call.id,
                content=INVALID_INPUT_MESSAGE.format(
                    name=call.name, error=call.input["error"], raw=call.input["raw"]
                ),
                is_error=True,
            )

        if self.requires_confirmation(call):
            approved = await self.broker.request_confirmation(
                self.broker.new_confirmation_id(),
                {
                    "tool": call.name,
                    "toolUseId": call.id,
                    "description": f"Run {call.name}",
                    "args": dict(call.input),
                    "path": permission_path(call.input),
                },
            )
            if not approved:
                record.status = "error"
                record.error = "denied by user"
                log.info("Tool call denied", tool=call.name, call_id=call.id)
                return ToolResultBlock(
                    tool_use_id=call.id,
                    content=DENIED_MESSAGE.format(name=call.name),
                    is_error=True,
                )

        context = ToolContext(
            call_id=call.id,
            work_mode=WorkMode.parse(mode),
            base_path=self.base_path,
            on_stream=lambda chunk, stream: self._on_chunk(record, chunk, stream),
            on_artifact=self._on_artifact,
            ask_user=self.broker.ask_user,
        )
        try:
            output = await self.registry.execute(call.name, dict(call.input), mode=mode, context=context)
        except Exception as e:
            record.status = "error"
            record.error = str(e)
            log.error("Tool call failed", tool=call.name, call_id=call.id, error=str(e))
            return ToolResultBlock(
                tool_use_id=call.id,
                content=f"Error executing tool: {e}",
                is_error=True,
            )

        record.status = "done"
        return ToolResultBlock(tool_use_id=call.id, content=output or "[no output]")

    def _on_chunk(self, record: ToolCallRecord, chunk: str, stream: str) -> None:
        record.streamed_output.append(chunk)
        self.dispatcher.emit(
            EventType.TOOL_OUTPUT_CHUNK,
            {"callId": record.call_id, "chunk": chunk, "stream": stream},
        )

    def _on_artifact(self, path: str, name: str, type: str) -> None:
        self.state.add_artifact(path, name, type)
