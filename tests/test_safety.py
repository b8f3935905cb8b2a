
import math
import os
import time
import unittest
from agent.executor import RestrictedExecutor, run_code_capture
from agent.safety import validate_code

class TestSandboxing(unittest.TestCase):
    def test_safe_arithmetic(self):
        result = run_code_capture("return 1+1", 1.0)
        self.assertTrue(result.ok)
        self.assertEqual(result.value, 2)

    def test_trailing_expression_is_the_value(self):
        result = run_code_capture("a = 20\na + 22", 1.0)
        self.assertEqual(result.value, 42)

    def test_safe_modules(self):
        result = run_code_capture("return [math.sqrt(16), json.dumps({'a': 1}), statistics.mean([1, 2, 3])]", 1.0)
        self.assertEqual(result.value, [4.0, '{"a": 1}', 2])

    def test_functions_and_classes(self):
        code = (
            "def square(x):\n"
            "    return x * x\n"
            "class Box:\n"
            "    def __init__(self, v):\n"
            "        self.v = v\n"
            "return square(Box(7).v)"
        )
        result = run_code_capture(code, 1.0)
        self.assertIsNone(result.error)
        self.assertEqual(result.value, 49)

    def test_runtime_error_is_captured(self):
        result = run_code_capture("log('before')\nraise ValueError('boom')", 1.0)
        self.assertFalse(result.ok)
        self.assertEqual(result.error, "ValueError: boom")
        self.assertEqual(result.logs, ["before"])

    def test_log_and_print(self):
        result = run_code_capture("log('a')\nprint('b', 1)\nlog({'k': [1]})\nreturn 3", 1.0)
        self.assertEqual(result.logs[:2], ["a", "b 1"])
        self.assertIn('"k"', result.logs[2])
        self.assertEqual(result.value, 3)

    def test_unserializable_value_is_repr(self):
        result = run_code_capture("return range(3)", 1.0)
        self.assertEqual(result.value, "range(0, 3)")

    def test_unsafe_import(self):
        result = run_code_capture("import os\nreturn os.getcwd()", 1.0)
        self.assertFalse(result.ok)
        self.assertIn("Security Violations", result.error)
        self.assertIn("Import of 'os' is not allowed", result.error)

    def test_unsafe_open(self):
        result = run_code_capture("f = open('test.txt', 'w')", 1.0)
        self.assertIn("Call to 'open' is not allowed", result.error)

    def test_dunder_escape_rejected(self):
        result = run_code_capture("return ().__class__.__bases__[0].__subclasses__()", 1.0)
        self.assertFalse(result.ok)
        self.assertIn("Access to attribute '__class__' is not allowed", result.error)

    def test_builtins_not_reachable(self):
        result = run_code_capture("return __builtins__", 1.0)
        self.assertIn("Access to name '__builtins__' is not allowed", result.error)
        result = run_code_capture("return globals()", 1.0)
        self.assertIn("Call to 'globals' is not allowed", result.error)

    def test_module_internals_not_reachable(self):
        result = run_code_capture("return json.codecs.open('/etc/hostname').read()", 1.0)
        self.assertFalse(result.ok)
        self.assertIn("AttributeError", result.error)
        result = run_code_capture("return statistics.sys.modules['os'].getcwd()", 1.0)
        self.assertFalse(result.ok)
        self.assertIn("AttributeError", result.error)
        self.assertEqual(run_code_capture("return re.sub('a', 'b', 'aa')", 1.0).value, "bb")
        self.assertEqual(run_code_capture("return datetime.date(2024, 1, 2)", 1.0).value, "2024-01-02")

    def test_module_changes_do_not_carry_over(self):
        run_code_capture("math.pi = 3", 1.0)
        self.assertEqual(run_code_capture("return math.pi", 1.0).value, math.pi)

    def test_unknown_name_fails_at_runtime(self):
        result = run_code_capture("return os", 1.0)
        self.assertFalse(result.ok)
        self.assertIn("NameError", result.error)

    def test_timeout(self):
        start = time.monotonic()
        result = run_code_capture("while True:\n    pass", 0.2)
        self.assertLess(time.monotonic() - start, 2.0)
        self.assertFalse(result.ok)
        self.assertTrue(result.timed_out)
        self.assertIn("timed out", result.error)

    def test_timeout_not_swallowed_by_except_exception(self):
        code = (
            "while True:\n"
            "    try:\n"
            "        pass\n"
            "    except Exception:\n"
            "        pass"
        )
        result = run_code_capture(code, 0.2)
        self.assertTrue(result.timed_out)

    def test_bare_except_rejected(self):
        errors = validate_code("try:\n    pass\nexcept:\n    pass", allow_private=False)
        self.assertEqual(errors, ["Bare except is not allowed"])

    def test_validator_allowed_modules(self):
        self.assertEqual(validate_code("import math\nfrom collections import Counter", {"math", "collections"}), [])
        self.assertEqual(validate_code("from . import x", {"x"}), ["Relative imports are not allowed"])
        self.assertTrue(validate_code("def (:", ())[0].startswith("SyntaxError"))


class TestRestrictedExecutor(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.executor = RestrictedExecutor(timeout=1.0)

    async def asyncTearDown(self):
        await self.executor.shutdown()

    async def test_logs_reach_callback_before_result(self):
        seen = []
        result = await self.executor.execute("log('one')\nlog('two')\nreturn 1+1", on_log=seen.append)
        self.assertEqual(seen, ["one", "two"])
        self.assertEqual(result.value, 2)

    async def test_runs_outside_this_process(self):
        result = await self.executor.execute("return 1")
        self.assertTrue(result.ok)
        self.assertTrue(self.executor.ready)
        self.assertNotEqual(self.executor._process.pid, os.getpid())

    async def test_timeout_is_bounded(self):
        await self.executor.execute("return 0")
        start = time.monotonic()
        result = await self.executor.execute("n = 0\nwhile True:\n    n += 1", timeout=0.2)
        self.assertLess(time.monotonic() - start, 2.0)
        self.assertFalse(result.ok)
        self.assertTrue(result.timed_out)

        # the line tracer stopped it, so the worker is kept
        self.assertEqual((await self.executor.execute("return 5")).value, 5)
        self.assertEqual(self.executor.start_count, 1)

    async def test_repeated_timeouts_do_not_wedge_the_executor(self):
        code = (
            "try:\n"
            "    while True:\n"
            "        pass\n"
            "finally:\n"
            "    while True:\n"
            "        pass"
        )
        await self.executor.execute("return 0")
        for _ in range(3):
            start = time.monotonic()
            result = await self.executor.execute(code, timeout=0.2)
            self.assertLess(time.monotonic() - start, 10.0)
            self.assertTrue(result.timed_out)
            self.assertFalse(self.executor.ready)

        result = await self.executor.execute("return 1+1", timeout=0.2)
        self.assertTrue(result.ok, result.error)
        self.assertEqual(result.value, 2)
        self.assertEqual(self.executor.start_count, 4)

    async def test_logs_before_a_kill_are_kept(self):
        code = "log('started')\ntry:\n    while True:\n        pass\nfinally:\n    while True:\n        pass"
        result = await self.executor.execute(code, timeout=0.2)
        self.assertTrue(result.timed_out)
        self.assertEqual(result.logs, ["started"])


if __name__ == '__main__':
    unittest.main()
