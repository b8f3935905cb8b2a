import json
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from pydantic import ValidationError

from agent import codegen
from agent.errors import AgentError, ArgumentError, UnsupportedError
from agent.executor import RestrictedExecutor, get_executor
from agent.interpreter import InterpreterSession, get_session
from agent.models import ExecutionResult, ToolResult
from agent.tools import ARGUMENTS, ToolArgs, ToolName
from agent.web import ProxyClient, SearchClient
from core.config import settings
from core.logger import logger

LogCallback = Callable[[str], None]
Handler = Callable[[Any, Optional[LogCallback]], Awaitable[ToolResult]]


def parse_arguments(name: ToolName, raw_arguments: str) -> ToolArgs:
    try:
        data = json.loads(raw_arguments or "{}")
    except json.JSONDecodeError as e:
        raise ArgumentError(f"Arguments are not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ArgumentError("Arguments must be a JSON object")
    try:
        return ARGUMENTS[name].model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
            for err in e.errors()
        )
        raise ArgumentError(f"Invalid arguments for {name.value}: {problems}") from e


def _execution_to_tool_result(result: ExecutionResult, fields) -> ToolResult:
    value = {field: getattr(result, field) for field in fields}
    if result.ok:
        return ToolResult(ok=True, value=value)
    value.pop("value", None)
    error_type = "TimeoutError" if result.timed_out else "ExecutionError"
    return ToolResult(ok=False, value=value, error=result.error, error_type=error_type)


class ToolDispatcher:
    """
    Routes a model's tool call to its handler and folds every outcome into a ToolResult.

    Nothing raised by a handler escapes `dispatch()`: agent errors keep their class
    name as `error_type`, anything else is reported as an ExecutionError.
    """

    def __init__(self, search_client: Optional[SearchClient] = None,
                 proxy_client: Optional[ProxyClient] = None,
                 executor: Optional[RestrictedExecutor] = None,
                 interpreter: Optional[InterpreterSession] = None,
                 enabled: Optional[Iterable[str]] = None):
        self.search_client = search_client or SearchClient()
        self.proxy_client = proxy_client or ProxyClient()
        self.executor = executor or get_executor()
        self._interpreter = interpreter
        self.enabled = set(enabled if enabled is not None else settings.ENABLED_TOOLS)

        self._handlers: Dict[ToolName, Handler] = {
            ToolName.SEARCH: self._search,
            ToolName.PROXY_CALL: self._proxy_call,
            ToolName.EXECUTE_SANDBOX_A: self._execute_sandbox_a,
            ToolName.EXECUTE_SANDBOX_B: self._execute_sandbox_b,
            ToolName.GENERATE_CODE: self._generate_code,
        }
        missing = set(ToolName) - set(self._handlers)
        if missing:
            raise TypeError(f"No handler for tools: {sorted(t.value for t in missing)}")

    @property
    def interpreter(self) -> InterpreterSession:
        if self._interpreter is None:
            self._interpreter = get_session()
        return self._interpreter

    def resolve(self, name: str) -> ToolName:
        try:
            tool = ToolName(name)
        except ValueError:
            raise UnsupportedError(f"unknown tool: {name}")
        if tool.value not in self.enabled:
            raise UnsupportedError(f"tool is disabled: {name}")
        return tool

    async def dispatch(self, name: str, raw_arguments: str,
                       on_log: Optional[LogCallback] = None) -> ToolResult:
        try:
            tool = self.resolve(name)
            args = parse_arguments(tool, raw_arguments)
            result = await self._handlers[tool](args, on_log)
        except AgentError as e:
            logger.warning(f"Tool {name} failed: {e}", extra={"tool": name, "error_type": e.kind})
            return ToolResult.failure(e)
        except Exception as e:
            logger.error(f"Tool {name} crashed: {e}", exc_info=True, extra={"tool": name})
            return ToolResult(ok=False, error=f"{type(e).__name__}: {e}", error_type="ExecutionError")

        logger.info(f"Tool {name} finished", extra={"tool": name, "ok": result.ok})
        return result

    async def _search(self, args, on_log):
        return ToolResult(ok=True, value=await self.search_client.search(args.query))

    async def _proxy_call(self, args, on_log):
        return ToolResult(ok=True, value=await self.proxy_client.call(args.endpoint, args.data))

    async def _execute_sandbox_a(self, args, on_log):
        result = await self.executor.execute(args.code, on_log=on_log)
        return _execution_to_tool_result(result, ("value", "logs"))

    async def _execute_sandbox_b(self, args, on_log):
        result = await self.interpreter.execute(args.code)
        return _execution_to_tool_result(result, ("value", "stdout", "stderr"))

    async def _generate_code(self, args, on_log):
        code = codegen.generate(args.language, args.description, args.requirements)
        return ToolResult(ok=True, value={
            "language": args.language,
            "description": args.description,
            "requirements": args.requirements,
            "code": code,
        })
