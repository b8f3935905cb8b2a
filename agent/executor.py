import ast
import asyncio
import builtins
import datetime
import json
import math
import multiprocessing
import re
import statistics
import sys
import threading
import time
import types
from typing import Any, Callable, Dict, List, Optional

from agent.errors import ExecutionError
from agent.models import ExecutionResult
from agent.safety import validate_code
from agent.sanitize import format_log_args, to_jsonable
from core.config import settings
from core.logger import logger

FILENAME = "<sandbox-a>"
ENTRYPOINT = "__sandbox_main__"

# Extra wall-clock allowance before an unresponsive worker is killed.
ABANDON_GRACE = 0.5
STARTUP_TIMEOUT = 30.0

# Workers are spawned, not forked: the host runs an event loop and thread pools.
_CONTEXT = multiprocessing.get_context("spawn")

# Create a restricted version of builtins
SAFE_BUILTINS = {
    name: getattr(builtins, name)
    for name in [
        "abs", "all", "any", "ascii", "bin", "bool", "bytearray", "bytes", "callable",
        "chr", "complex", "dict", "divmod", "enumerate", "filter", "float", "format",
        "frozenset", "hasattr", "hash", "hex", "int", "isinstance",
        "issubclass", "iter", "len", "list", "map", "max", "min", "next", "object", "oct",
        "ord", "pow", "range", "repr", "reversed", "round", "set",
        "slice", "sorted", "str", "sum", "tuple", "type", "zip",
        "Exception", "ArithmeticError", "AssertionError", "IndexError", "KeyError",
        "LookupError", "NotImplementedError", "RuntimeError", "StopIteration",
        "TypeError", "ValueError", "ZeroDivisionError",
        "__build_class__",
    ]
}


def public_members(module) -> Dict[str, Any]:
    """The public API of `module`, without the modules it imports (`json.codecs`, `statistics.sys`)."""
    names = getattr(module, "__all__", None) or [n for n in dir(module) if not n.startswith("_")]
    members = {}
    for name in names:
        value = getattr(module, name, None)
        if value is None or isinstance(value, types.ModuleType):
            continue
        members[name] = value
    return members


SAFE_MODULES = {
    module.__name__: public_members(module)
    for module in (math, json, datetime, re, statistics)
}


class SandboxTimeout(BaseException):
    """Raised inside the snippet once its deadline passes. Not an Exception so
    `except Exception` in user code cannot swallow it."""


class LogSink:
    """The `log` hook handed to snippets. Stops recording once closed.

    `forward`, when given, also receives every line as it is logged.
    """

    def __init__(self, forward: Optional[Callable[[str], None]] = None):
        self.lines: List[str] = []
        self.closed = False
        self.forward = forward
        self._lock = threading.Lock()

    def __call__(self, *args, **kwargs):
        text = format_log_args(args)
        with self._lock:
            if self.closed:
                return
            self.lines.append(text)
        if self.forward:
            self.forward(text)

    def close(self) -> List[str]:
        with self._lock:
            self.closed = True
            return list(self.lines)


def get_safe_globals(log: Callable[..., None]) -> Dict[str, Any]:
    env: Dict[str, Any] = {"__builtins__": dict(SAFE_BUILTINS, print=log), "__name__": "sandbox"}
    # fresh namespaces per run, so a snippet rebinding `math.pi` cannot affect the next one
    for name, members in SAFE_MODULES.items():
        env[name] = types.SimpleNamespace(**members)
    env["log"] = log
    return env


def compile_snippet(code: str):
    """Compile the snippet as the body of a function.

    `return` hands back the value; a trailing bare expression is returned too.
    """
    tree = ast.parse(code, filename=FILENAME)
    body = tree.body
    if body and isinstance(body[-1], ast.Expr):
        last = body[-1]
        body[-1] = ast.copy_location(ast.Return(value=last.value), last)

    module = ast.parse(f"def {ENTRYPOINT}():\n    pass\n", filename=FILENAME)
    module.body[0].body = body or [ast.Pass()]
    ast.fix_missing_locations(module)
    return compile(module, FILENAME, "exec")


def _deadline_tracer(deadline: float):
    def trace(frame, event, arg):
        if frame.f_code.co_filename != FILENAME:
            return None
        if time.monotonic() > deadline:
            raise SandboxTimeout()
        return trace
    return trace


def run_code_capture(code: str, timeout: float, log: Optional[LogSink] = None) -> ExecutionResult:
    """Run `code` synchronously in the restricted environment, in the calling thread.

    The deadline is checked line by line, so code that keeps running after the
    first SandboxTimeout (a `finally:` loop) or sits in one long C call is only
    stopped by `RestrictedExecutor` killing the worker.
    """
    log = log or LogSink()
    errors = validate_code(code, allowed_modules=(), allow_private=False, filename=FILENAME)
    if errors:
        return ExecutionResult(
            ok=False,
            error="Security Violations:\n" + "\n".join(errors),
            logs=log.close(),
        )

    safe_globals = get_safe_globals(log)
    previous = sys.gettrace()
    try:
        exec(compile_snippet(code), safe_globals)
        sys.settrace(_deadline_tracer(time.monotonic() + timeout))
        value = safe_globals[ENTRYPOINT]()
        sys.settrace(previous)
        return ExecutionResult(ok=True, value=to_jsonable(value), logs=log.close())
    except SandboxTimeout:
        sys.settrace(previous)
        return ExecutionResult(
            ok=False,
            error=f"Execution timed out after {timeout:g}s",
            logs=log.close(),
            timed_out=True,
        )
    except Exception as e:
        sys.settrace(previous)
        return ExecutionResult(ok=False, error=f"{type(e).__name__}: {e}", logs=log.close())


def serve(conn):
    """Worker process loop: one request in; any number of ("log", line) and one ("result", dict) out."""
    conn.send(("ready", None))
    while True:
        try:
            request = conn.recv()
        except EOFError:
            return
        sink = LogSink(forward=lambda line: conn.send(("log", line)))
        result = run_code_capture(request["code"], request["timeout"], sink)
        conn.send(("result", result.model_dump()))


class RestrictedExecutor:
    """
    Sandbox A: snippets run with a whitelisted global namespace in a worker process.

    The worker is started on first use and reused while it behaves. A snippet that
    outlives its timeout plus ABANDON_GRACE gets the worker killed, so nothing it
    does afterwards can reach a later call; the next call starts a new worker.
    Calls are serialized.
    """

    def __init__(self, timeout: Optional[float] = None, startup_timeout: float = STARTUP_TIMEOUT):
        self.timeout = timeout if timeout is not None else settings.SANDBOX_A_TIMEOUT
        self.startup_timeout = startup_timeout
        self.start_count = 0
        self._process = None
        self._conn = None
        self._lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._process is not None and self._process.is_alive()

    async def _receive(self, deadline: float):
        remaining = deadline - time.monotonic()
        if remaining <= 0 or not await asyncio.to_thread(self._conn.poll, remaining):
            raise asyncio.TimeoutError()
        return self._conn.recv()

    async def _start(self):
        self.start_count += 1
        logger.info("Starting Sandbox A worker", extra={"attempt": self.start_count})
        conn, child_conn = _CONTEXT.Pipe()
        process = _CONTEXT.Process(target=serve, args=(child_conn,), name="sandbox-a", daemon=True)
        process.start()
        child_conn.close()
        self._process, self._conn = process, conn
        try:
            kind, _ = await self._receive(time.monotonic() + self.startup_timeout)
        except (asyncio.TimeoutError, EOFError, OSError) as e:
            self._discard()
            raise ExecutionError(f"Sandbox worker failed to start: {e!r}") from e
        if kind != "ready":
            self._discard()
            raise ExecutionError(f"Unexpected message from sandbox worker: {kind}")

    def _discard(self):
        process, conn = self._process, self._conn
        self._process = self._conn = None
        if conn is not None:
            conn.close()
        if process is not None:
            if process.is_alive():
                process.kill()
            process.join(1.0)

    async def _roundtrip(self, code: str, timeout: float) -> ExecutionResult:
        deadline = time.monotonic() + timeout + ABANDON_GRACE
        logs: List[str] = []
        try:
            self._conn.send({"code": code, "timeout": timeout})
            while True:
                kind, payload = await self._receive(deadline)
                if kind == "log":
                    logs.append(payload)
                else:
                    return ExecutionResult(**payload)
        except asyncio.TimeoutError:
            # Stuck outside the line tracer: kill it along with anything it would do later.
            logger.warning("Sandbox A worker unresponsive, killing it", extra={"timeout": timeout})
            self._discard()
            return ExecutionResult(
                ok=False,
                error=f"Execution timed out after {timeout:g}s",
                logs=logs,
                timed_out=True,
            )
        except (EOFError, OSError) as e:
            logger.error(f"Sandbox A worker died: {e!r}")
            self._discard()
            return ExecutionResult(ok=False, error="Sandbox worker exited while running the snippet",
                                   logs=logs)

    async def execute(self, code: str, timeout: Optional[float] = None,
                      on_log: Optional[Callable[[str], None]] = None) -> ExecutionResult:
        """Run a snippet. Raises ExecutionError if the worker process cannot be started."""
        timeout = timeout if timeout is not None else self.timeout
        async with self._lock:
            try:
                if not self.ready:
                    await self._start()
                result = await self._roundtrip(code, timeout)
            except asyncio.CancelledError:
                self._discard()
                raise

        if result.timed_out:
            logger.warning("Sandbox A timeout", extra={"timeout": timeout})
        if on_log:
            for line in result.logs:
                on_log(line)
        return result

    async def shutdown(self):
        async with self._lock:
            self._discard()


_executor: Optional[RestrictedExecutor] = None


def get_executor() -> RestrictedExecutor:
    """The process-wide Sandbox A executor, created on first use."""
    global _executor
    if _executor is None:
        _executor = RestrictedExecutor()
    return _executor
