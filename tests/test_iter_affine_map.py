from __future__ import annotations

import itertools

import pytest

from relayout import IR, Analyzer, Range, Sym, detect_iter_map
from relayout.core.IndexIR import lt
from relayout.core.IndexIR_interpreter import interpret
from relayout.rewrite.iter_affine_map import (
    IterSplitExpr,
    IterSumExpr,
    SumMark,
    VarMark,
)


def _vars(*names):
    syms = [Sym(nm) for nm in names]
    return syms, [IR.Var(s) for s in syms]


def _check_same_values(index, result, input_iters):
    syms = list(input_iters)
    domains = [
        range(rng.min.val, rng.min.val + rng.extent.val) for rng in input_iters.values()
    ]
    decomposed = result.to_expr()
    for point in itertools.product(*domains):
        env = dict(zip(syms, point))
        assert interpret(decomposed, env) == interpret(index, env)


def test_fuse_two_iterators():
    (i, j), (vi, vj) = _vars("i", "j")
    input_iters = {i: Range(0, 8), j: Range(0, 4)}
    index = vi * 4 + vj
    (s,) = detect_iter_map([index], input_iters)

    assert len(s.args) == 1 and s.base == IR.Const(0)
    fused = s.args[0]
    assert isinstance(fused.source, SumMark)
    assert fused.extent == IR.Const(32)
    assert fused.scale == IR.Const(1)
    inner = fused.source.sum.args
    assert [a.source.var for a in inner] == [i, j]
    assert [a.scale for a in inner] == [IR.Const(4), IR.Const(1)]
    _check_same_values(index, s, input_iters)


def test_fuse_with_base_scale():
    (i, j), (vi, vj) = _vars("i", "j")
    input_iters = {i: Range(0, 8), j: Range(0, 4)}
    index = vi * 8 + vj * 2 + 1
    (s,) = detect_iter_map([index], input_iters)

    assert s.base == IR.Const(1)
    assert s.args[0].scale == IR.Const(2)
    _check_same_values(index, s, input_iters)


def test_split_by_division():
    (i,), (vi,) = _vars("i")
    input_iters = {i: Range(0, 16)}
    outer, inner = detect_iter_map([vi // 4, vi % 4], input_iters)

    (o,) = outer.args
    assert isinstance(o.source, VarMark)
    assert (o.lower_factor, o.extent) == (IR.Const(4), IR.Const(4))
    (n,) = inner.args
    assert (n.lower_factor, n.extent) == (IR.Const(1), IR.Const(4))
    _check_same_values(vi // 4, outer, input_iters)
    _check_same_values(vi % 4, inner, input_iters)


def test_combine_splits_of_one_iterator():
    (i,), (vi,) = _vars("i")
    input_iters = {i: Range(0, 32)}
    index = vi // 4 * 4 + vi % 4
    (s,) = detect_iter_map([index], input_iters)

    (split,) = s.args
    assert split == IterSplitExpr(
        VarMark(i, IR.Const(0), IR.Const(32)), IR.Const(1), IR.Const(32), IR.Const(1)
    )


def test_division_of_fused_sum():
    (i, j), (vi, vj) = _vars("i", "j")
    input_iters = {i: Range(0, 8), j: Range(0, 4)}
    index = (vi * 4 + vj) // 2
    (s,) = detect_iter_map([index], input_iters)
    assert len(s.args) == 1
    _check_same_values(index, s, input_iters)


def test_shifted_domain():
    (i,), (vi,) = _vars("i")
    input_iters = {i: Range(2, 8)}
    (s,) = detect_iter_map([vi], input_iters)
    assert s.base == IR.Const(2)
    _check_same_values(vi, s, input_iters)


def test_free_symbol_goes_to_base():
    (i, n), (vi, vn) = _vars("i", "n")
    (s,) = detect_iter_map([vi + vn], {i: Range(0, 8)})
    assert s.base == vn
    assert len(s.args) == 1


def test_accepts_var_keys():
    (i,), (vi,) = _vars("i")
    (s,) = detect_iter_map([vi], {vi: Range(0, 8)})
    assert s.args[0].source.var == i


def test_bad_input_iters():
    (i,), (vi,) = _vars("i")
    with pytest.raises(TypeError):
        detect_iter_map([vi], {i: (0, 8)})
    with pytest.raises(TypeError):
        detect_iter_map([vi], {"i": Range(0, 8)})


def test_no_decomposition():
    (i, j, n), (vi, vj, vn) = _vars("i", "j", "n")
    input_iters = {i: Range(0, 16), j: Range(0, 4)}
    assert detect_iter_map([vi * vj], input_iters) == []
    assert detect_iter_map([vi // vn], input_iters) == []
    assert detect_iter_map([vn // vi], input_iters) == []
    assert detect_iter_map([(vi + 1) // 4], input_iters) == []
    assert detect_iter_map([vi + vj], input_iters) == []
    assert detect_iter_map([vi // 3], input_iters) == []


def test_predicate():
    (i,), (vi,) = _vars("i")
    input_iters = {i: Range(0, 16)}
    assert detect_iter_map([vi], input_iters, lt(vi, 16)) != []
    assert detect_iter_map([vi], input_iters, lt(vi, 10)) == []
    assert detect_iter_map([vi], input_iters, False) == []


def test_require_bijective():
    (i, j), (vi, vj) = _vars("i", "j")
    input_iters = {i: Range(0, 16)}
    assert detect_iter_map([vi // 4, vi % 4], input_iters, require_bijective=True)
    assert detect_iter_map([vi // 4], input_iters, require_bijective=True) == []
    assert detect_iter_map([vi % 4], input_iters, require_bijective=True) == []
    assert detect_iter_map([vi % 4], input_iters) != []

    input_iters = {i: Range(0, 8), j: Range(0, 4)}
    assert detect_iter_map([vi * 4 + vj], input_iters, require_bijective=True)
    assert detect_iter_map([vi], input_iters, require_bijective=True) == []


def test_scope_is_restored():
    (i,), (vi,) = _vars("i")
    analyzer = Analyzer()
    detect_iter_map([vi], {i: Range(0, 8)}, analyzer=analyzer)
    assert analyzer.get_range(i) is None


def test_printing():
    (i,), (vi,) = _vars("i")
    (s,) = detect_iter_map([vi // 4], {i: Range(0, 16)})
    assert str(s) == "sum(split(mark(i, 16), lower_factor=4, extent=4, scale=1), base=0)"


def test_tree_validation():
    (i,), _ = _vars("i")
    mark = VarMark(i, IR.Const(0), IR.Const(8))
    split = IterSplitExpr(mark, IR.Const(1), IR.Const(8), IR.Const(1))
    assert str(IterSumExpr([split], IR.Const(0)).to_expr()) == "0 + i // 1 % 8 * 1"

    with pytest.raises(TypeError):
        VarMark("i", IR.Const(0), IR.Const(8))
    with pytest.raises(TypeError):
        IterSplitExpr(object(), IR.Const(1), IR.Const(8), IR.Const(1))
    with pytest.raises(TypeError):
        IterSplitExpr(mark, 1, IR.Const(8), IR.Const(1))
    with pytest.raises(TypeError):
        IterSumExpr((split,), IR.Const(0))
    with pytest.raises(TypeError):
        SumMark(split, IR.Const(8))
