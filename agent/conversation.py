from typing import Any, Dict, List, Optional

from agent.errors import ConversationError
from agent.models import AgentMessage, ToolCall, ToolResult


class Conversation:
    """Ordered message log for one chat.

    Enforces tool call pairing: once an assistant message requests tool calls,
    only `tool` messages answering those calls may be appended until every call
    has exactly one answer.
    """

    def __init__(self, system_prompt: str = ""):
        self.system_prompt = system_prompt
        self._messages: List[AgentMessage] = []
        self._pending: Dict[str, ToolCall] = {}
        if system_prompt:
            self._messages.append(AgentMessage(role="system", content=system_prompt))

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, message: AgentMessage) -> AgentMessage:
        if message.role == "tool":
            if message.tool_call_id not in self._pending:
                raise ConversationError(
                    f"Tool message {message.tool_call_id!r} does not answer a pending tool call"
                )
            del self._pending[message.tool_call_id]
        elif self._pending:
            raise ConversationError(
                f"{len(self._pending)} tool call(s) still unanswered: {', '.join(self._pending)}"
            )
        elif message.role == "assistant" and message.tool_calls:
            ids = [call.id for call in message.tool_calls]
            if len(set(ids)) != len(ids):
                raise ConversationError(f"Duplicate tool call ids in one message: {ids}")
            self._pending = {call.id: call for call in message.tool_calls}

        self._messages.append(message)
        return message

    def add_message(self, role: str, content: str) -> AgentMessage:
        return self.append(AgentMessage(role=role, content=content))

    def add_tool_result(self, call: ToolCall, result: ToolResult) -> AgentMessage:
        return self.append(AgentMessage(
            role="tool",
            tool_call_id=call.id,
            name=call.function.name,
            content=result.model_dump_json(),
        ))

    def pending_tool_calls(self) -> List[ToolCall]:
        return list(self._pending.values())

    def resolve_pending(self, reason: str) -> int:
        """Answer every unanswered tool call with a failed result. Returns how many."""
        calls = self.pending_tool_calls()
        for call in calls:
            self.add_tool_result(call, ToolResult(ok=False, error=reason, error_type="Aborted"))
        return len(calls)

    def last(self) -> Optional[AgentMessage]:
        return self._messages[-1] if self._messages else None

    def messages(self) -> List[AgentMessage]:
        return list(self._messages)

    def snapshot(self) -> List[Dict[str, Any]]:
        return [m.to_wire() for m in self._messages]

    def clear(self):
        self._messages = []
        self._pending = {}
        if self.system_prompt:
            self._messages.append(AgentMessage(role="system", content=self.system_prompt))
