"""Protected evaluation of submitted code fragments.

A fragment is first compiled as a single expression and, failing that, as a
statement block.  Execution runs with the shared host namespace as globals and
a per-session :class:`SessionNamespace` as locals, so sessions see their own
``_cli``/``print`` bindings while every other name lives in the shared table.
"""

from __future__ import annotations

import ast
import logging
import traceback
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from types import CodeType
from typing import Any, Callable, Dict, Iterator, List, Optional

from .protocol import format_values


LOGGER = logging.getLogger("hsipc.sandbox")

FRAGMENT_FILENAME = "<hsipc>"


class SessionNamespace(MutableMapping):
    """Local bindings layered over the shared globals; writes fall through to the globals."""

    def __init__(self, shared: Dict[str, Any], local: Optional[Dict[str, Any]] = None) -> None:
        self.shared = shared
        self.local: Dict[str, Any] = dict(local or {})

    def __getitem__(self, key: str) -> Any:
        if key in self.local:
            return self.local[key]
        return self.shared[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if key in self.local:
            self.local[key] = value
        else:
            self.shared[key] = value

    def __delitem__(self, key: str) -> None:
        if key in self.local:
            del self.local[key]
        else:
            del self.shared[key]

    def __iter__(self) -> Iterator[str]:
        seen = set(self.local)
        yield from self.local
        for key in self.shared:
            if key not in seen:
                yield key

    def __len__(self) -> int:
        return len(self.local) + sum(1 for key in self.shared if key not in self.local)

    def __repr__(self) -> str:
        return f"SessionNamespace(local={sorted(self.local)!r})"


@dataclass
class EvalResult:
    ok: bool
    values: List[Any] = field(default_factory=list)

    def format(self) -> str:
        text = format_values(self.values)
        if text:
            text += "\n"
        return text

    def joined(self) -> str:
        return format_values(self.values)


@dataclass
class CompiledFragment:
    code: CodeType
    expression: bool
    spread: bool = False


def describe_exception(exc: BaseException) -> str:
    return "".join(traceback.format_exception_only(type(exc), exc)).strip()


class Evaluator:
    """Runs fragments against a namespace and captures values or the failure."""

    def __init__(self, shared: Dict[str, Any], *, preparser: Any = None) -> None:
        self.shared = shared
        self.preparser = preparser

    def apply_preparser(self, code: str) -> str:
        hook = self.preparser
        if hook is None:
            return code
        if not callable(hook):
            LOGGER.error("console preparser must be a callable or None")
            return code
        try:
            modified = hook(code)
        except Exception:
            LOGGER.exception("console preparser failed; using unmodified code")
            return code
        if not isinstance(modified, str):
            LOGGER.error("console preparser returned %s, expected str; using unmodified code", type(modified).__name__)
            return code
        return modified

    @staticmethod
    def compile_fragment(code: str) -> CompiledFragment:
        """Compile *code* as an expression, else as statements; raises the second SyntaxError.

        Parser failures other than SyntaxError propagate from the first attempt.
        """
        try:
            tree = ast.parse(code, filename=FRAGMENT_FILENAME, mode="eval")
        except SyntaxError:
            pass
        else:
            spread = isinstance(tree.body, ast.Tuple) and bool(tree.body.elts)
            return CompiledFragment(compile(tree, FRAGMENT_FILENAME, "eval"), expression=True, spread=spread)
        return CompiledFragment(compile(code, FRAGMENT_FILENAME, "exec"), expression=False)

    def evaluate(self, code: str, namespace: Optional[MutableMapping] = None) -> EvalResult:
        scope = self.shared if namespace is None else namespace
        try:
            fragment = self.compile_fragment(code)
        except Exception as exc:
            # RecursionError/MemoryError from the parser count as parse failures
            LOGGER.debug("fragment failed to compile: %s", type(exc).__name__)
            return EvalResult(False, [describe_exception(exc)])
        try:
            if fragment.expression:
                result = eval(fragment.code, self.shared, scope)
            else:
                exec(fragment.code, self.shared, scope)
                result = None
        except BaseException as exc:
            # submitted code must never stop the host, KeyboardInterrupt included
            LOGGER.debug("fragment raised %s", type(exc).__name__)
            return EvalResult(False, [describe_exception(exc)])
        return EvalResult(True, self._values(result, fragment.spread))

    @staticmethod
    def _values(result: Any, spread: bool) -> List[Any]:
        if result is None:
            return []
        if spread and isinstance(result, tuple):
            return list(result)
        return [result]


Preparser = Callable[[str], str]


__all__ = [
    "SessionNamespace",
    "EvalResult",
    "CompiledFragment",
    "Evaluator",
    "Preparser",
    "describe_exception",
]
