import time
from typing import Any, AsyncGenerator, Dict, List, Optional

from agent.conversation import Conversation
from agent.dispatcher import ToolDispatcher
from agent.errors import AgentError, TransportError
from agent.gateway import ModelGateway
from agent.models import AgentMessage, TurnResult
from agent.prompts import format_system_prompt
from agent.tools import build_tools
from core.config import settings
from core.logger import logger

ABORTED_TOOL_CALL = "Turn was aborted before this tool call finished"


class ChatAgent:
    """
    Drives one conversation: model call, tool calls, model call, ... until the
    model answers without requesting tools.

    Tool calls from one response are dispatched one after another in the order
    the model listed them. The assistant message is appended before dispatch,
    then one tool message per call. A failed tool is just another result the
    model gets to read; only a gateway failure (TransportError) ends the turn
    early, and it does so before anything from that round is appended.
    """

    def __init__(self, gateway: Optional[ModelGateway] = None,
                 dispatcher: Optional[ToolDispatcher] = None,
                 system_prompt: Optional[str] = None,
                 max_steps: Optional[int] = None,
                 deadline: Optional[float] = None,
                 tools: Optional[List[Dict[str, Any]]] = None,
                 clock=time.monotonic):
        self.gateway = gateway or ModelGateway()
        self.dispatcher = dispatcher or ToolDispatcher()
        self.tools = tools if tools is not None else build_tools(self.dispatcher.enabled)
        if system_prompt is None:
            system_prompt = settings.SYSTEM_PROMPT or format_system_prompt(self.tools)
        self.conversation = Conversation(system_prompt)
        self.max_steps = max_steps or settings.MAX_STEPS
        self.deadline = deadline if deadline is not None else settings.TURN_DEADLINE
        self.clock = clock
        self.steps = 0
        self._aborted = False
        self._running = False
        self._reserved = False

    @property
    def messages(self) -> List[Dict[str, Any]]:
        return self.conversation.snapshot()

    @property
    def running(self) -> bool:
        return self._running or self._reserved

    def add_message(self, role: str, content: str):
        if self.running:
            raise AgentError("Cannot add messages while a turn is running")
        self._settle_aborted_calls()
        self.conversation.add_message(role, content)

    def submit(self, content: str):
        """Add a user message and hold the conversation for the `run()` that follows.

        `running` is true from here on, so a second submit is refused even before
        the first turn has started.
        """
        self.add_message("user", content)
        self._reserved = True

    def reset(self):
        if self.running:
            raise AgentError("Cannot reset while a turn is running")
        self.conversation.clear()

    def cancel(self):
        """Abort the running turn. Results that arrive afterwards are dropped."""
        if self._running:
            logger.info("Turn cancelled")
            self._aborted = True
        self._reserved = False

    def is_done(self) -> bool:
        """True when there is nothing for the model to respond to."""
        if self.conversation.pending_tool_calls():
            return False
        last = self.conversation.last()
        return last is None or last.role not in ("user", "tool")

    def _settle_aborted_calls(self):
        settled = self.conversation.resolve_pending(ABORTED_TOOL_CALL)
        if settled:
            logger.info(f"Answered {settled} tool call(s) left open by an aborted turn")

    def _over_deadline(self, started: float) -> bool:
        return self.deadline is not None and self.clock() - started >= self.deadline

    async def run(self) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Runs the agent loop and yields what happens along the way.
        Yields dict: {"type": "message"|"tool_call"|"log"|"tool_result"|"final"
                      |"budget_exceeded"|"aborted", "content": str, ...}

        Raises TransportError if the model cannot be reached.
        """
        if self._running:
            raise AgentError("A turn is already running for this conversation")
        self._reserved = False
        self._settle_aborted_calls()
        self.steps = 0
        if self.is_done():
            return

        self._running = True
        self._aborted = False
        started = self.clock()
        try:
            while True:
                if self._aborted:
                    yield {"type": "aborted", "content": "Turn cancelled"}
                    return
                if self.steps >= self.max_steps or self._over_deadline(started):
                    logger.warning("Turn budget exceeded", extra={"steps": self.steps})
                    yield {
                        "type": "budget_exceeded",
                        "content": f"Stopped after {self.steps} model calls without a final answer.",
                    }
                    return

                remaining = None
                if self.deadline is not None:
                    remaining = self.deadline - (self.clock() - started)
                try:
                    response = await self.gateway.complete(
                        self.conversation.snapshot(), self.tools, timeout=remaining
                    )
                except TransportError:
                    if self._over_deadline(started):
                        continue
                    raise
                self.steps += 1

                if self._aborted:
                    continue

                self.conversation.append(AgentMessage(
                    role="assistant",
                    content=response.content,
                    tool_calls=response.tool_calls or None,
                ))
                if response.content:
                    yield {"type": "message", "content": response.content}

                if not response.tool_calls:
                    logger.info("Turn finished", extra={"steps": self.steps})
                    yield {"type": "final", "content": response.content or ""}
                    return

                for call in response.tool_calls:
                    logger.info(
                        f"Tool Call: {call.function.name} args={call.function.arguments}",
                        extra={"tool_call_id": call.id, "step": self.steps},
                    )
                    yield {"type": "tool_call", "content": call.function.name,
                           "id": call.id, "arguments": call.function.arguments}

                    logs: List[str] = []
                    result = await self.dispatcher.dispatch(
                        call.function.name, call.function.arguments, on_log=logs.append
                    )
                    if self._aborted:
                        break

                    for line in logs:
                        yield {"type": "log", "content": line, "id": call.id}
                    self.conversation.add_tool_result(call, result)
                    yield {"type": "tool_result", "content": result.model_dump_json(),
                           "id": call.id, "ok": result.ok}
        finally:
            self._running = False

    async def run_turn(self, content: str) -> TurnResult:
        """Add a user message and drive the loop to completion."""
        self.add_message("user", content)
        status, answer = "done", None
        async for event in self.run():
            if event["type"] == "final":
                answer = event["content"]
            elif event["type"] in ("budget_exceeded", "aborted"):
                status = event["type"]
        return TurnResult(status=status, content=answer, steps=self.steps)
