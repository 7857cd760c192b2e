import pytest

from attack_core.compiler import ExpressionCompiler
from attack_core.errors import ExpressionError


def test_compile_returns_cached_tree() -> None:
    compiler = ExpressionCompiler()
    first = compiler.compile("1d20+5")
    second = compiler.compile("  1d20+5 ")
    assert first is second
    assert (compiler.hits, compiler.misses) == (1, 1)
    assert "1d20+5" in compiler
    assert len(compiler) == 1


def test_cache_is_cleared_when_full() -> None:
    compiler = ExpressionCompiler(max_entries=2)
    compiler.compile("1")
    compiler.compile("2")
    compiler.compile("3")
    assert len(compiler) == 1
    assert "3" in compiler
    assert "1" not in compiler


def test_compile_optional_skips_blank_fields() -> None:
    compiler = ExpressionCompiler()
    assert compiler.compile_optional(None) is None
    assert compiler.compile_optional("   ") is None
    assert compiler.compile_optional("2").source == "2"


def test_failed_compiles_are_not_cached() -> None:
    compiler = ExpressionCompiler()
    with pytest.raises(ExpressionError):
        compiler.compile("1d")
    assert len(compiler) == 0
    compiler.clear()
    assert compiler.misses == 0
