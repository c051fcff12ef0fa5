from __future__ import annotations

import pytest

from relayout import IR, Analyzer, Range, Sym
from relayout.core.IndexIR import logical_and, lt


def _var(name):
    sym = Sym(name)
    return sym, IR.Var(sym)


def test_canonicalize_polynomial():
    _, x = _var("x")
    assert str(Analyzer().simplify((x + 2) * 3 - x)) == "2 * x + 6"


def test_canonicalize_cancels():
    _, x = _var("x")
    _, y = _var("y")
    assert Analyzer().simplify(x * y - y * x + 4) == IR.Const(4)


def test_simplify_with_ranges():
    xs, x = _var("x")
    analyzer = Analyzer()
    analyzer.bind(xs, Range(0, 16))

    assert analyzer.simplify((x * 4 + 3) // 4) == x
    assert analyzer.simplify((x * 4 + 3) % 4) == IR.Const(3)
    assert analyzer.simplify(x % 16) == x
    assert analyzer.simplify(x // 16) == IR.Const(0)
    assert str(analyzer.simplify(x % 8)) == "x % 8"


def test_nested_division():
    _, x = _var("x")
    analyzer = Analyzer()
    assert str(analyzer.simplify(x // 4 // 2)) == "x // 8"
    assert str(analyzer.simplify(x % 16 % 4)) == "x % 4"
    assert str(analyzer.simplify(x // 1)) == "x"
    assert analyzer.simplify(x % 1) == IR.Const(0)


def test_symbolic_divisibility():
    _, M = _var("M")
    analyzer = Analyzer()
    assert analyzer.simplify(M * 4 % 4) == IR.Const(0)
    assert analyzer.simplify(M * 4 // 4) == M
    assert analyzer.can_prove_divisible(M * 8 + 16, 4)
    assert not analyzer.can_prove_divisible(M * 8 + 2, 4)


def test_shifted_range():
    xs, x = _var("x")
    analyzer = Analyzer()
    analyzer.bind(xs, Range(1, 4))
    assert analyzer.simplify((x - 1) // 4) == IR.Const(0)
    assert analyzer.const_bound(x - 1) == (0, 3)


def test_comparisons():
    xs, x = _var("x")
    _, y = _var("y")
    analyzer = Analyzer()
    analyzer.bind(xs, Range(0, 16))

    assert analyzer.simplify(lt(x, 16)) == IR.Const(True)
    assert analyzer.simplify(IR.BinOp(">=", x, IR.Const(16))) == IR.Const(False)
    assert analyzer.simplify(IR.BinOp(">", x, IR.Const(-1))) == IR.Const(True)
    assert analyzer.simplify(IR.BinOp("==", x // 16, IR.Const(0))) == IR.Const(True)
    assert str(analyzer.simplify(IR.BinOp("==", x, IR.Const(3)))) == "x == 3"
    assert str(analyzer.simplify(lt(x, y))) == "x < y"
    assert analyzer.can_prove(lt(x, 32))
    assert not analyzer.can_prove(lt(x, 8))


def test_logical_operators():
    xs, x = _var("x")
    _, y = _var("y")
    analyzer = Analyzer()
    analyzer.bind(xs, Range(0, 16))

    too_big = IR.BinOp(">=", x, IR.Const(16))

    assert str(analyzer.simplify(logical_and(lt(x, 16), lt(x, y)))) == "x < y"
    assert analyzer.simplify(logical_and(lt(x, y), too_big)) == IR.Const(False)
    assert analyzer.simplify(IR.BinOp("or", lt(x, y), lt(x, 16))) == IR.Const(True)
    assert str(analyzer.simplify(IR.BinOp("or", too_big, lt(x, y)))) == "x < y"


def test_true_is_not_one():
    analyzer = Analyzer()
    assert analyzer.simplify(True) == IR.Const(True)
    assert analyzer.simplify(True) != IR.Const(1)
    assert not analyzer.can_prove(1)


def test_scope_restores_facts():
    xs, x = _var("x")
    analyzer = Analyzer()
    analyzer.bind(xs, Range(0, 64))

    with analyzer.scope({xs: Range(0, 4)}):
        assert analyzer.get_range(xs) == Range(0, 4)
        assert analyzer.simplify(x // 4) == IR.Const(0)

    assert analyzer.get_range(xs) == Range(0, 64)
    assert str(analyzer.simplify(x // 4)) == "x // 4"


def test_scope_restores_on_error():
    xs, _ = _var("x")
    analyzer = Analyzer()
    with pytest.raises(RuntimeError):
        with analyzer.scope({xs: Range(0, 4)}):
            raise RuntimeError("boom")
    assert analyzer.get_range(xs) is None


def test_bind_conflict():
    xs, _ = _var("x")
    analyzer = Analyzer()
    analyzer.bind(xs, Range(0, 4))
    analyzer.bind(xs, Range(0, 4), allow_override=False)
    with pytest.raises(ValueError, match="already bound"):
        analyzer.bind(xs, Range(0, 8), allow_override=False)
    analyzer.bind(xs, Range(0, 8))
    assert analyzer.get_range(xs) == Range(0, 8)


def test_bind_accepts_var():
    xs, x = _var("x")
    analyzer = Analyzer()
    analyzer.bind(x, Range(0, 4))
    assert analyzer.get_range(xs) == Range(0, 4)
    with pytest.raises(TypeError):
        analyzer.bind("x", Range(0, 4))
    with pytest.raises(TypeError):
        analyzer.bind(xs, (0, 4))


def test_empty_range_carries_no_bound():
    xs, x = _var("x")
    analyzer = Analyzer()
    analyzer.bind(xs, Range(4, 0))
    assert analyzer.const_bound(x) == (None, None)
    assert str(analyzer.simplify(x // 16)) == "x // 16"


def test_symbolic_range_bound():
    xs, x = _var("x")
    _, n = _var("n")
    analyzer = Analyzer()
    analyzer.bind(xs, Range(0, n * 4))
    assert analyzer.const_bound(x) == (0, None)
    assert not analyzer.can_prove(lt(x, 4))
