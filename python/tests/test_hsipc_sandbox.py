"""Tests for fragment compilation and protected evaluation."""

from __future__ import annotations

import logging

import pytest

from hsipc.sandbox import EvalResult, Evaluator, SessionNamespace


@pytest.fixture
def evaluator():
    return Evaluator({})


def test_expression_yields_single_value(evaluator):
    result = evaluator.evaluate("1+1")
    assert result.ok is True
    assert result.values == [2]
    assert result.format() == "2\n"


def test_bare_tuple_spreads_into_values(evaluator):
    result = evaluator.evaluate("1, 'two', 3.0")
    assert result.values == [1, "two", 3.0]
    assert result.format() == "1\ttwo\t3.0\n"


def test_none_and_statements_yield_nothing(evaluator):
    assert evaluator.evaluate("None").values == []
    result = evaluator.evaluate("x = 3")
    assert result.ok is True
    assert result.values == []
    assert result.format() == ""
    assert evaluator.shared["x"] == 3


def test_statement_block_then_expression(evaluator):
    assert evaluator.evaluate("def f():\n    return y * 2\ny = 4").ok
    assert evaluator.evaluate("f()").values == [8]


def test_runtime_error_is_captured(evaluator):
    result = evaluator.evaluate("raise RuntimeError('boom')")
    assert result.ok is False
    assert result.values == ["RuntimeError: boom"]
    assert result.format() == "RuntimeError: boom\n"


def test_system_exit_does_not_escape(evaluator):
    result = evaluator.evaluate("raise SystemExit(3)")
    assert result.ok is False
    assert "SystemExit" in result.values[0]


def test_syntax_error_reports_statement_attempt(evaluator):
    result = evaluator.evaluate("1 +")
    assert result.ok is False
    assert "SyntaxError" in result.values[0]
    with pytest.raises(SyntaxError):
        Evaluator.compile_fragment("1 +")


def test_compile_fragment_prefers_expression():
    assert Evaluator.compile_fragment("a + 1").expression is True
    assert Evaluator.compile_fragment("a = 1").expression is False
    assert Evaluator.compile_fragment("(1, 2)").spread is True
    assert Evaluator.compile_fragment("()").spread is False


def test_session_namespace_layers_over_shared():
    shared = {"shared_name": 1}
    namespace = SessionNamespace(shared, {"_cli": "session", "print": "local-print"})
    evaluator = Evaluator(shared)

    assert evaluator.evaluate("_cli", namespace).values == ["session"]
    assert evaluator.evaluate("shared_name", namespace).values == [1]

    evaluator.evaluate("new_name = 5", namespace)
    assert shared["new_name"] == 5
    assert "new_name" not in namespace.local

    namespace["print"] = "replaced"
    assert namespace.local["print"] == "replaced"
    assert "print" not in shared

    del namespace["new_name"]
    assert "new_name" not in shared
    names = set(namespace) - {"__builtins__"}
    assert names == {"_cli", "print", "shared_name"}
    assert len(namespace) == len(shared) + 2


def test_unknown_name_is_a_failure(evaluator):
    result = evaluator.evaluate("missing_name", SessionNamespace(evaluator.shared))
    assert result.ok is False
    assert result.values[0].startswith("NameError")


def test_preparser_rewrites_code(evaluator):
    evaluator.preparser = lambda code: code.replace("plus", "+")
    assert evaluator.apply_preparser("1 plus 1") == "1 + 1"


def test_preparser_not_callable_is_logged(evaluator, caplog):
    evaluator.preparser = "nope"
    with caplog.at_level(logging.ERROR, logger="hsipc.sandbox"):
        assert evaluator.apply_preparser("1+1") == "1+1"
    assert "console preparser must be a callable or None" in caplog.text


def test_preparser_failures_fall_back_to_original(evaluator, caplog):
    def broken(code):
        raise ValueError("bad hook")

    evaluator.preparser = broken
    with caplog.at_level(logging.ERROR, logger="hsipc.sandbox"):
        assert evaluator.apply_preparser("1+1") == "1+1"
    evaluator.preparser = lambda code: 42
    with caplog.at_level(logging.ERROR, logger="hsipc.sandbox"):
        assert evaluator.apply_preparser("1+1") == "1+1"
    assert "expected str" in caplog.text


def test_empty_text_gets_no_newline():
    assert EvalResult(True, [""]).format() == ""
    assert EvalResult(True, []).joined() == ""


@pytest.mark.parametrize(
    "code, summary",
    [
        ("raise KeyboardInterrupt", "KeyboardInterrupt"),
        ("raise GeneratorExit", "GeneratorExit"),
        ("raise BaseException('x')", "BaseException: x"),
    ],
)
def test_base_exceptions_are_captured(evaluator, code, summary):
    result = evaluator.evaluate(code)
    assert result.ok is False
    assert result.values == [summary]


def test_parser_recursion_is_a_failure(evaluator):
    result = evaluator.evaluate("1" + "+1" * 200000)
    assert result.ok is False
    assert len(result.values) == 1
    assert "Error" in result.values[0]
