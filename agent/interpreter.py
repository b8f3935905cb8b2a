import ast
import asyncio
import os
import queue
import re
import tempfile
import time
from pathlib import Path
from typing import Iterable, List, Optional

from jupyter_client.kernelspec import NoSuchKernel
from jupyter_client.manager import AsyncKernelManager

from agent.errors import InitializationError
from agent.models import ExecutionResult
from agent.safety import validate_code
from agent.sanitize import to_jsonable
from core.config import settings
from core.logger import logger

SETUP_SOURCE = Path(__file__).with_name("kernel_setup.py").read_text(encoding="utf-8")
STARTUP_TIMEOUT = 30.0
# How long an interrupted snippet gets to unwind before the kernel is shut down.
INTERRUPT_GRACE = 2.0
# The kernel inherits only these from the host environment; API keys stay behind.
KERNEL_ENV = ("PATH", "HOME", "LANG", "LC_ALL", "TMPDIR", "SYSTEMROOT")
ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")


def parse_value(text: str):
    """`text/plain` of an execute_result back into data when it is a Python literal."""
    try:
        return to_jsonable(ast.literal_eval(text))
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        return text


class _Output:
    def __init__(self):
        self.stdout: List[str] = []
        self.stderr: List[str] = []
        self.value = None
        self.error: Optional[str] = None

    def handle(self, msg) -> bool:
        """Fold one iopub message in. True once the kernel reports idle."""
        msg_type = msg.get("msg_type")
        content = msg.get("content", {})

        if msg_type == "stream":
            parts = self.stdout if content.get("name") == "stdout" else self.stderr
            parts.append(content.get("text", ""))
        elif msg_type == "execute_result":
            text = content.get("data", {}).get("text/plain")
            if text is not None:
                self.value = parse_value(text)
        elif msg_type == "error":
            self.error = f"{content.get('ename', '')}: {content.get('evalue', '')}"
            traceback = content.get("traceback")
            if traceback:
                self.stderr.append(ANSI_ESCAPE.sub("", "\n".join(traceback)) + "\n")
        elif msg_type == "status" and content.get("execution_state") == "idle":
            return True
        return False

    def result(self) -> ExecutionResult:
        return ExecutionResult(
            ok=self.error is None,
            value=self.value,
            error=self.error,
            stdout="".join(self.stdout),
            stderr="".join(self.stderr),
        )


class InterpreterSession:
    """
    Sandbox B: a persistent Jupyter kernel that runs snippets one at a time.

    The kernel is started lazily by the first `execute()`. Concurrent first calls
    share one start-up: `_init_lock` serializes them and the re-check inside the
    lock lets latecomers reuse the kernel the winner started. A failed start
    leaves the session un-started, so the next call tries again.

    Its first cell (`kernel_setup.py`) swaps the user namespace's builtins for a
    reduced set whose `__import__` only admits `allowed_modules`. Snippets are
    also checked before they are sent.

    A snippet that overruns its timeout is interrupted and the namespace is
    kept. If it does not unwind within INTERRUPT_GRACE the kernel is shut down
    and the following call starts a fresh one.
    """

    def __init__(self, allowed_modules: Optional[Iterable[str]] = None,
                 timeout: Optional[float] = None, kernel_name: Optional[str] = None,
                 startup_timeout: float = STARTUP_TIMEOUT,
                 interrupt_grace: float = INTERRUPT_GRACE):
        self.allowed_modules = set(
            allowed_modules if allowed_modules is not None else settings.SANDBOX_B_ALLOWED_MODULES
        )
        self.timeout = timeout if timeout is not None else settings.SANDBOX_B_TIMEOUT
        self.kernel_name = kernel_name or settings.SANDBOX_B_KERNEL
        self.startup_timeout = startup_timeout
        self.interrupt_grace = interrupt_grace
        self.init_count = 0
        self.version: Optional[str] = None
        self._km = None
        self._client = None
        self._ready = False
        self._workdir: Optional[tempfile.TemporaryDirectory] = None
        self._init_lock = asyncio.Lock()
        self._exec_lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._ready

    def _cwd(self) -> str:
        # one scratch directory per session, reused by every kernel it starts
        if self._workdir is None:
            self._workdir = tempfile.TemporaryDirectory(prefix="sandbox-b-")
        return self._workdir.name

    async def _start_kernel(self):
        km = AsyncKernelManager(kernel_name=self.kernel_name)
        env = {key: os.environ[key] for key in KERNEL_ENV if key in os.environ}
        await km.start_kernel(cwd=self._cwd(), env=env)
        client = km.client()
        client.start_channels()
        try:
            await client.wait_for_ready(timeout=self.startup_timeout)
        except RuntimeError:
            client.stop_channels()
            await km.shutdown_kernel(now=True)
            raise
        return km, client

    async def start(self):
        if self.ready:
            return
        async with self._init_lock:
            if self.ready:
                return
            self.init_count += 1
            logger.info("Starting interpreter", extra={"attempt": self.init_count, "kernel": self.kernel_name})
            try:
                self._km, self._client = await self._start_kernel()
            except (NoSuchKernel, OSError, RuntimeError, asyncio.TimeoutError) as e:
                logger.error(f"Interpreter failed to start: {e!r}")
                raise InitializationError(f"Interpreter failed to start: {e!r}") from e

            setup = SETUP_SOURCE + f"\n_install_sandbox({sorted(self.allowed_modules)!r})\n"
            result = None
            try:
                result = await self._run(setup, self.startup_timeout)
            finally:
                if result is None or not result.ok:
                    await self._discard()
            if not result.ok:
                raise InitializationError(f"Interpreter set-up failed: {result.error}")
            self.version = result.value
            self._ready = True
            logger.info("Interpreter ready", extra={"version": self.version})

    async def _collect(self, msg_id: str, deadline: float, output: _Output):
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise asyncio.TimeoutError()
            try:
                msg = await self._client.get_iopub_msg(timeout=remaining)
            except queue.Empty as e:
                raise asyncio.TimeoutError() from e
            # output of earlier, interrupted cells is skipped
            if msg.get("parent_header", {}).get("msg_id") != msg_id:
                continue
            if output.handle(msg):
                return

    async def _drain_reply(self, msg_id: str, deadline: float):
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise asyncio.TimeoutError()
            try:
                reply = await self._client.get_shell_msg(timeout=remaining)
            except queue.Empty as e:
                raise asyncio.TimeoutError() from e
            if reply.get("parent_header", {}).get("msg_id") == msg_id:
                return reply

    async def _run(self, code: str, timeout: float) -> ExecutionResult:
        msg_id = self._client.execute(code, store_history=True, allow_stdin=False, stop_on_error=False)
        output = _Output()
        deadline = time.monotonic() + timeout
        try:
            await self._collect(msg_id, deadline, output)
            await self._drain_reply(msg_id, deadline)
        except asyncio.TimeoutError:
            logger.warning("Sandbox B timeout, interrupting kernel", extra={"timeout": timeout})
            await self._interrupt(msg_id)
            partial = output.result()
            return ExecutionResult(
                ok=False,
                error=f"Execution timed out after {timeout:g}s",
                stdout=partial.stdout,
                stderr=partial.stderr,
                timed_out=True,
            )
        except asyncio.CancelledError:
            await self._km.interrupt_kernel()
            raise
        return output.result()

    async def _interrupt(self, msg_id: str):
        await self._km.interrupt_kernel()
        try:
            await self._collect(msg_id, time.monotonic() + self.interrupt_grace, _Output())
        except asyncio.TimeoutError:
            logger.warning("Kernel ignored the interrupt, shutting it down")
            await self._discard()

    async def execute(self, code: str, timeout: Optional[float] = None) -> ExecutionResult:
        """Run a snippet. Raises InitializationError if the interpreter cannot be started."""
        timeout = timeout if timeout is not None else self.timeout
        errors = validate_code(code, allowed_modules=self.allowed_modules, allow_private=False,
                               filename="<sandbox-b>")
        if errors:
            return ExecutionResult(ok=False, error="Security Violations:\n" + "\n".join(errors))

        await self.start()
        async with self._exec_lock:
            if self.ready and not await self._km.is_alive():
                logger.warning("Interpreter died, starting a new one")
                await self._discard()
            # a previous call may have discarded the kernel while we waited
            await self.start()
            return await self._run(code, timeout)

    async def _discard(self):
        km, client = self._km, self._client
        self._km = self._client = None
        self._ready = False
        if client is not None:
            client.stop_channels()
        if km is not None:
            await km.shutdown_kernel(now=True)

    async def shutdown(self):
        await self._discard()
        if self._workdir is not None:
            self._workdir.cleanup()
            self._workdir = None


_session: Optional[InterpreterSession] = None


def get_session() -> InterpreterSession:
    """The process-wide interpreter session, created on first use."""
    global _session
    if _session is None:
        _session = InterpreterSession()
    return _session
