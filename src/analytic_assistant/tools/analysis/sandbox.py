"""Restricted execution of model-authored analysis scripts.

A script is the *body* of a function: it sees only the injected helpers,
a small set of builtins and the bound ``fetch`` capability, and it must
``return`` its result. Scripts are checked with an AST pass before
anything runs, then executed on a worker thread with a wall-clock
deadline. Failures of any kind come back as a ``SandboxResult``; nothing
raised by the script reaches the caller.
"""

from __future__ import annotations

import ast
import asyncio
import builtins
import json
import math
import statistics
import sys
import threading
import time
import traceback
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from types import CodeType, SimpleNamespace
from typing import Any

from loguru import logger

from analytic_assistant.errors import SandboxError
from analytic_assistant.tools.analysis.helpers import HELPERS
from analytic_assistant.tools.analysis.limits import checked_lshift, checked_mul, checked_pow, checked_range
from analytic_assistant.tools.base import STORE_NOT_CONFIGURED
from analytic_assistant.tools.store.pagination import DEFAULT_PAGE_SIZE, fetch_all
from analytic_assistant.tools.store.store_client import StoreClient

SCRIPT_FILENAME = "<analysis>"
ENTRY_POINT = "_analysis_main"
DEFAULT_TIMEOUT_SECONDS = 30.0
FETCHABLE_ENDPOINTS = ("products", "orders", "customers", "coupons")

_SAFE_BUILTINS = frozenset({
    "abs", "all", "any", "bool", "dict", "divmod", "enumerate", "filter", "float",
    "int", "isinstance", "len", "list", "map", "max", "min", "range", "reversed",
    "round", "set", "sorted", "str", "sum", "tuple", "zip",
    "ArithmeticError", "Exception", "IndexError", "KeyError", "LookupError",
    "RuntimeError", "TypeError", "ValueError", "ZeroDivisionError",
})

_DANGEROUS_BUILTINS = frozenset({
    "exec", "eval", "compile", "open", "__import__", "getattr", "setattr",
    "delattr", "globals", "locals", "vars", "dir", "breakpoint", "exit",
    "quit", "input", "memoryview", "classmethod", "staticmethod", "super",
    "property", "type", "help", "object",
})

# Frame and code object handles reachable without a leading underscore.
_BLOCKED_ATTRS = frozenset({
    "gi_frame", "gi_code", "gi_yieldfrom", "cr_frame", "cr_code", "cr_await",
    "ag_frame", "ag_code", "tb_frame", "tb_next", "f_back", "f_builtins",
    "f_code", "f_globals", "f_locals",
})

# Big-integer builders that run as a single uninterruptible C call.
_MATH_EXCLUDED = frozenset({"comb", "factorial", "lcm", "perm", "prod"})
_MATH_FUNCTIONS = tuple(n for n in dir(math) if not n.startswith("_") and n not in _MATH_EXCLUDED)

_STATISTICS_FUNCTIONS = (
    "fmean", "geometric_mean", "harmonic_mean", "mean", "median", "median_high",
    "median_low", "mode", "multimode", "pstdev", "pvariance", "quantiles", "stdev",
    "variance",
)

# Operators whose results are size-checked before they are computed.
_CHECKED_OPERATORS: dict[type[ast.operator], str] = {
    ast.Pow: "_checked_pow",
    ast.Mult: "_checked_mul",
    ast.LShift: "_checked_lshift",
}


class ScriptRejected(SandboxError):
    def __init__(self, violations: list[str]):
        self.violations = violations
        super().__init__("; ".join(violations))


class ScriptTimeout(SandboxError):
    pass


class _Deadline(BaseException):
    """Raised inside the script's frames once the deadline has passed.

    Derives from BaseException so ``except Exception`` in a script cannot
    swallow it.
    """


class _NoResult:
    def __repr__(self) -> str:
        return "<no result>"


_NO_RESULT = _NoResult()


@dataclass
class SandboxResult:
    success: bool
    value: Any = None
    error: str | None = None
    stack: str | None = None
    timed_out: bool = False
    elapsed: float = 0.0
    violations: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "result": self.value}
        payload: dict[str, Any] = {"success": False, "error": self.error}
        if self.stack:
            payload["stack"] = self.stack
        if self.violations:
            payload["violations"] = list(self.violations)
        return payload


class _ScriptValidator(ast.NodeVisitor):
    def __init__(self) -> None:
        self.violations: list[str] = []

    def _reject(self, message: str) -> None:
        if message not in self.violations:
            self.violations.append(message)

    def visit_Import(self, node: ast.Import) -> None:
        self._reject("Imports are not allowed")

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        self._reject("Imports are not allowed")

    def visit_Name(self, node: ast.Name) -> None:
        if node.id in _DANGEROUS_BUILTINS:
            self._reject(f"Dangerous builtin '{node.id}' is not allowed")
        elif node.id.startswith("__"):
            self._reject(f"Dunder name '{node.id}' is not allowed")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_"):
            self._reject(f"Private attribute access '{node.attr}' is not allowed")
        elif node.attr in _BLOCKED_ATTRS:
            self._reject(f"Attribute '{node.attr}' is not allowed")
        self.generic_visit(node)

    def visit_Global(self, node: ast.Global) -> None:
        self._reject("global/nonlocal statements are not allowed")

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
        self._reject("global/nonlocal statements are not allowed")

    def _reject_async(self, node: ast.AST) -> None:
        self._reject("Async constructs are not allowed")

    visit_AsyncFunctionDef = _reject_async
    visit_AsyncFor = _reject_async
    visit_AsyncWith = _reject_async
    visit_Await = _reject_async

    def visit_Yield(self, node: ast.Yield) -> None:
        self._reject("Generator functions (yield) are not allowed")

    def visit_YieldFrom(self, node: ast.YieldFrom) -> None:
        self._reject("Generator functions (yield) are not allowed")

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._reject("Class definitions are not allowed")

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.type is None:
            self._reject("Bare 'except:' is not allowed; name the exception type")
        self.generic_visit(node)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        if isinstance(node.op, tuple(_CHECKED_OPERATORS)) and not isinstance(node.target, ast.Name):
            self._reject("Augmented *=, **= and <<= are only allowed on plain names; write 'x[k] = x[k] * y'")
        self.generic_visit(node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        if node.name.startswith("__"):
            self._reject(f"Dunder name '{node.name}' is not allowed")
        self.generic_visit(node)


def validate_script(tree: ast.AST) -> list[str]:
    """Return the list of violations in ``tree``. Empty means the script may run."""
    validator = _ScriptValidator()
    validator.visit(tree)
    return validator.violations


def ieee_div(a: Any, b: Any) -> Any:
    """True division with IEEE-754 results for a zero divisor."""
    try:
        return a / b
    except ZeroDivisionError:
        if a == 0 or (isinstance(a, float) and math.isnan(a)):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


class _OperatorRewriter(ast.NodeTransformer):
    """Rewrites ``a / b`` into ``_ieee_div(a, b)`` and ``**``, ``*``, ``<<`` into
    their size-checked helpers, including the ``name op= b`` forms."""

    _HELPERS: dict[type[ast.operator], str] = {ast.Div: "_ieee_div", **_CHECKED_OPERATORS}

    def _call(self, op: ast.operator, left: ast.expr, right: ast.expr) -> ast.Call:
        helper = self._HELPERS[type(op)]
        return ast.Call(func=ast.Name(id=helper, ctx=ast.Load()), args=[left, right], keywords=[])

    def visit_BinOp(self, node: ast.BinOp) -> ast.AST:
        self.generic_visit(node)
        if type(node.op) in self._HELPERS:
            return ast.copy_location(self._call(node.op, node.left, node.right), node)
        return node

    def visit_AugAssign(self, node: ast.AugAssign) -> ast.AST:
        self.generic_visit(node)
        if type(node.op) in self._HELPERS and isinstance(node.target, ast.Name):
            current = ast.Name(id=node.target.id, ctx=ast.Load())
            value = self._call(node.op, current, node.value)
            return ast.copy_location(ast.Assign(targets=[node.target], value=value), node)
        return node


def compile_script(code: str) -> CodeType:
    """Validate ``code`` and compile it as the body of the entry-point function.

    Raises SyntaxError or ScriptRejected.
    """
    tree = ast.parse(code, filename=SCRIPT_FILENAME)
    violations = validate_script(tree)
    if violations:
        raise ScriptRejected(violations)
    tree = _OperatorRewriter().visit(tree)

    module = ast.parse(f"def {ENTRY_POINT}():\n    pass\n", filename=SCRIPT_FILENAME)
    function = module.body[0]
    function.body = [*tree.body, ast.Return(value=ast.Name(id="_NO_RESULT", ctx=ast.Load()))]
    ast.fix_missing_locations(module)
    return compile(module, SCRIPT_FILENAME, "exec")


def _sandbox_print(*args: Any, sep: str = " ", **_ignored: Any) -> None:
    logger.bind(sandbox=True).info(f"[sandbox] {sep.join(str(arg) for arg in args)}")


def _safe_builtins() -> dict[str, Any]:
    table = {name: getattr(builtins, name) for name in _SAFE_BUILTINS if hasattr(builtins, name)}
    table["print"] = _sandbox_print
    table["range"] = checked_range
    return table


def _public_functions(module: Any, names: tuple[str, ...] | None = None) -> SimpleNamespace:
    # Modules are exposed as plain namespaces so their imports (sys, codecs...) stay unreachable.
    selected = names or tuple(n for n in dir(module) if not n.startswith("_"))
    return SimpleNamespace(**{n: getattr(module, n) for n in selected if hasattr(module, n)})


class BoundFetch:
    """The one I/O capability a script receives.

    ``fetch(endpoint, params=None, all_pages=True)`` is called synchronously
    from the worker thread and scheduled onto the caller's event loop.
    """

    def __init__(
        self,
        store: StoreClient | None,
        loop: asyncio.AbstractEventLoop,
        deadline: float,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self._store = store
        self._loop = loop
        self._deadline = deadline
        self._page_size = page_size
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def __call__(self, endpoint: str, params: dict[str, Any] | None = None, all_pages: bool = True) -> list[dict[str, Any]]:
        if self._store is None:
            raise RuntimeError(STORE_NOT_CONFIGURED)
        name = str(endpoint).strip().strip("/")
        if name not in FETCHABLE_ENDPOINTS:
            raise ValueError(f"fetch() endpoint must be one of: {', '.join(FETCHABLE_ENDPOINTS)}")

        future = asyncio.run_coroutine_threadsafe(self._fetch(name, dict(params or {}), all_pages), self._loop)
        with self._lock:
            self._pending.add(future)
        try:
            return future.result(timeout=max(0.0, self._deadline - time.monotonic()))
        except TimeoutError:
            future.cancel()
            raise _Deadline() from None
        finally:
            with self._lock:
                self._pending.discard(future)

    async def _fetch(self, endpoint: str, params: dict[str, Any], all_pages: bool) -> list[dict[str, Any]]:
        assert self._store is not None
        if all_pages:
            return await fetch_all(self._store, endpoint, params, page_size=self._page_size)
        page = await self._store.get_page(endpoint, params)
        return page.items

    def cancel_pending(self) -> None:
        with self._lock:
            pending = list(self._pending)
        for future in pending:
            future.cancel()


def _run_entry_point(code: CodeType, namespace: dict[str, Any], deadline: float) -> Any:
    def tracer(frame: Any, event: str, arg: Any) -> Any:
        if frame.f_code.co_filename != SCRIPT_FILENAME:
            return None
        if time.monotonic() >= deadline:
            raise _Deadline()
        return tracer

    exec(code, namespace)
    entry = namespace[ENTRY_POINT]
    sys.settrace(tracer)
    try:
        return entry()
    except _Deadline:
        raise ScriptTimeout("deadline exceeded") from None
    finally:
        sys.settrace(None)


def _script_stack(ex: BaseException) -> str:
    frames = [f for f in traceback.extract_tb(ex.__traceback__) if f.filename == SCRIPT_FILENAME]
    lines = ["Traceback (most recent call last):"]
    for frame in frames:
        where = "<script>" if frame.name == ENTRY_POINT else frame.name
        lines.append(f"  line {frame.lineno}, in {where}")
    lines.append(f"{type(ex).__name__}: {ex}")
    return "\n".join(lines)


class ScriptSandbox:
    def __init__(self, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS, page_size: int = DEFAULT_PAGE_SIZE):
        self._timeout = float(timeout_seconds)
        self._page_size = page_size

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def _namespace(self, fetch: BoundFetch) -> dict[str, Any]:
        return {
            "__builtins__": _safe_builtins(),
            **HELPERS,
            "fetch": fetch,
            "math": _public_functions(math, _MATH_FUNCTIONS),
            "statistics": _public_functions(statistics, _STATISTICS_FUNCTIONS),
            "json": _public_functions(json, ("dumps", "loads")),
            "datetime": datetime,
            "date": date,
            "timedelta": timedelta,
            "_ieee_div": ieee_div,
            "_checked_pow": checked_pow,
            "_checked_mul": checked_mul,
            "_checked_lshift": checked_lshift,
            "_NO_RESULT": _NO_RESULT,
        }

    async def run(self, code: str, store: StoreClient | None = None) -> SandboxResult:
        try:
            compiled = compile_script(code)
        except SyntaxError as ex:
            return SandboxResult(False, error=f"Syntax error: {ex.msg} (line {ex.lineno})")
        except ScriptRejected as ex:
            logger.warning(f"Analysis script rejected: {ex.violations}")
            return SandboxResult(False, error=f"Script rejected: {ex}", violations=ex.violations)

        started = time.monotonic()
        deadline = started + self._timeout
        fetch = BoundFetch(store, asyncio.get_running_loop(), deadline, page_size=self._page_size)
        namespace = self._namespace(fetch)

        try:
            value = await asyncio.wait_for(
                asyncio.to_thread(_run_entry_point, compiled, namespace, deadline),
                timeout=self._timeout,
            )
        except (TimeoutError, ScriptTimeout):
            fetch.cancel_pending()
            elapsed = time.monotonic() - started
            logger.warning(f"Analysis script timed out after {elapsed:.2f}s")
            return SandboxResult(
                False,
                error=f"Execution timed out after {self._timeout:g} seconds",
                timed_out=True,
                elapsed=elapsed,
            )
        except Exception as ex:
            elapsed = time.monotonic() - started
            logger.info(f"Analysis script raised {type(ex).__name__}: {ex}")
            return SandboxResult(False, error=str(ex) or type(ex).__name__, stack=_script_stack(ex), elapsed=elapsed)

        elapsed = time.monotonic() - started
        if value is _NO_RESULT:
            return SandboxResult(
                False,
                error="Script did not return a result. End the script with 'return <value>'.",
                elapsed=elapsed,
            )
        try:
            json.dumps(value, default=str)
        except (TypeError, ValueError, RecursionError) as ex:
            return SandboxResult(
                False,
                error=f"Script result could not be serialized: {ex}. Return numbers, strings, lists or dicts.",
                elapsed=elapsed,
            )
        logger.debug(f"Analysis script finished in {elapsed:.2f}s")
        return SandboxResult(True, value=value, elapsed=elapsed)
