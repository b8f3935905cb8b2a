from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Any, Dict, Literal

class ToolCallFunction(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    arguments: str  # arguments are often a JSON string

class ToolCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: str = "function"
    function: ToolCallFunction

class AgentMessage(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        # assistant messages that only carry tool calls still need an explicit null content
        if self.role == "assistant":
            data.setdefault("content", None)
        return data

class ToolResult(BaseModel):
    ok: bool
    value: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def failure(cls, error: Exception, value: Any = None) -> "ToolResult":
        kind = getattr(error, "kind", type(error).__name__)
        return cls(ok=False, value=value, error=str(error), error_type=kind)

class ExecutionResult(BaseModel):
    ok: bool
    value: Any = None
    error: Optional[str] = None
    stdout: str = ""
    stderr: str = ""
    logs: List[str] = Field(default_factory=list)
    timed_out: bool = False

class ModelResponse(BaseModel):
    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)

class TurnResult(BaseModel):
    status: Literal["done", "budget_exceeded", "aborted"]
    content: Optional[str] = None
    steps: int = 0
