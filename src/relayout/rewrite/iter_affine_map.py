from __future__ import annotations

import itertools
import logging

from asdl_adt import ADT

from ..core.IndexIR import IR, Range, as_expr, const_int, is_const, le
from ..core.prelude import Sym, extclass
from .analyzer import Analyzer

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
# --------------------------------------------------------------------------- #
# Affine decomposition tree
#
# A split denotes `(source // lower_factor) % extent * scale`, and a sum
# denotes `args[0] + ... + args[n-1] + base`.  A VarMark measures the offset
# of a loop variable from the start of its domain, so it takes values in
# [0, extent).

IterMap = ADT(
    """
module IterMap {
    mark = VarMark( sym var, expr min, expr extent )
         | SumMark( iter_sum sum, expr extent )

    iter_split = ( mark source, expr lower_factor, expr extent, expr scale )

    iter_sum = ( iter_split* args, expr base )
}""",
    ext_types={
        "sym": Sym,
        "expr": IR.expr,
    },
)

VarMark = IterMap.VarMark
SumMark = IterMap.SumMark
IterMark = IterMap.mark
IterSplitExpr = IterMap.iter_split
IterSumExpr = IterMap.iter_sum


@extclass(IterMap.VarMark)
@extclass(IterMap.SumMark)
@extclass(IterMap.iter_split)
@extclass(IterMap.iter_sum)
def to_expr(e):
    """The index expression denoted by `e`"""
    return _to_expr(e)


@extclass(IterMap.VarMark)
@extclass(IterMap.SumMark)
@extclass(IterMap.iter_split)
@extclass(IterMap.iter_sum)
def __str__(e):
    return _print_iter(e)


del to_expr
del __str__


def _to_expr(e) -> IR.expr:
    if isinstance(e, VarMark):
        if is_const(e.min, 0):
            return IR.Var(e.var)
        return IR.Var(e.var) - e.min

    elif isinstance(e, SumMark):
        return _to_expr(e.sum)

    elif isinstance(e, IterSplitExpr):
        return (_to_expr(e.source) // e.lower_factor) % e.extent * e.scale

    elif isinstance(e, IterSumExpr):
        res = e.base
        for arg in e.args:
            res = res + _to_expr(arg)
        return res

    else:
        assert False, f"bad case: {type(e)}"


def _print_iter(e) -> str:
    if isinstance(e, VarMark):
        return f"mark({e.var}, {e.extent})"

    elif isinstance(e, SumMark):
        return f"mark({_print_iter(e.sum)}, {e.extent})"

    elif isinstance(e, IterSplitExpr):
        return (
            f"split({_print_iter(e.source)}, lower_factor={e.lower_factor}, "
            f"extent={e.extent}, scale={e.scale})"
        )

    elif isinstance(e, IterSumExpr):
        args = ", ".join(_print_iter(a) for a in e.args)
        return f"sum({args}, base={e.base})"

    else:
        assert False, f"bad case: {type(e)}"


class IterMapError(Exception):
    pass


# --------------------------------------------------------------------------- #
# --------------------------------------------------------------------------- #
# Rewriting index expressions into sums of splits


class IterMapRewriter:
    def __init__(self, input_iters: dict, analyzer: Analyzer):
        self.analyzer = analyzer
        self.var_map = dict()
        for var, dom in input_iters.items():
            extent = analyzer.simplify(dom.extent)
            mark = VarMark(var, analyzer.simplify(dom.min), extent)
            split = IterSplitExpr(mark, IR.Const(1), extent, IR.Const(1))
            self.var_map[var] = IterSumExpr([split], mark.min)

    def rewrite(self, e: IR.expr) -> IterSumExpr:
        if isinstance(e, IR.Const):
            if not isinstance(e.val, int) or isinstance(e.val, bool):
                raise IterMapError(f"non-integer constant {e}")
            return IterSumExpr([], e)

        elif isinstance(e, IR.Var):
            if e.name in self.var_map:
                return self.var_map[e.name]
            # a free symbol, e.g. a buffer extent
            return IterSumExpr([], e)

        elif isinstance(e, IR.USub):
            return self._mul(self.rewrite(e.arg), IR.Const(-1))

        elif isinstance(e, IR.BinOp):
            lhs = self.rewrite(e.lhs)
            rhs = self.rewrite(e.rhs)
            if e.op == "+":
                return self._add(lhs, rhs)
            elif e.op == "-":
                return self._add(lhs, self._mul(rhs, IR.Const(-1)))
            elif e.op == "*":
                if not lhs.args:
                    return self._mul(rhs, lhs.base)
                elif not rhs.args:
                    return self._mul(lhs, rhs.base)
                raise IterMapError(f"product of two iterators in {e}")
            elif e.op in ("//", "%"):
                if rhs.args:
                    raise IterMapError(f"iterator in the divisor of {e}")
                if not lhs.args:
                    base = IR.BinOp(e.op, lhs.base, rhs.base)
                    return IterSumExpr([], self.analyzer.simplify(base))
                if e.op == "//":
                    return self._floordiv(lhs, rhs.base)
                return self._floormod(lhs, rhs.base)
            raise IterMapError(f"unsupported operator '{e.op}' in {e}")

        else:
            assert False, f"bad case: {type(e)}"

    def normalize(self, s: IterSumExpr) -> IterSumExpr:
        """Fuse all the splits of `s` into (at most) one split"""
        if not s.args:
            return s
        return IterSumExpr([self._fuse(s)], s.base)

    # ------------------------------------------------------------------ #

    def _mul(self, s: IterSumExpr, c: IR.expr) -> IterSumExpr:
        c = self.analyzer.simplify(c)
        if is_const(c, 0):
            return IterSumExpr([], IR.Const(0))
        args = [
            IterSplitExpr(
                a.source,
                a.lower_factor,
                a.extent,
                self.analyzer.simplify(a.scale * c),
            )
            for a in s.args
        ]
        return IterSumExpr(args, self.analyzer.simplify(s.base * c))

    def _add(self, a: IterSumExpr, b: IterSumExpr) -> IterSumExpr:
        args = list(a.args)
        for split in b.args:
            for k, prev in enumerate(args):
                if (
                    prev.source == split.source
                    and prev.lower_factor == split.lower_factor
                    and prev.extent == split.extent
                ):
                    scale = self.analyzer.simplify(prev.scale + split.scale)
                    if is_const(scale, 0):
                        del args[k]
                    else:
                        args[k] = IterSplitExpr(
                            prev.source, prev.lower_factor, prev.extent, scale
                        )
                    break
            else:
                args.append(split)
        return IterSumExpr(args, self.analyzer.simplify(a.base + b.base))

    def _combine_splits(self, args):
        """Merge `x // (c*k) % n * (s*k) + x // c % k * s` into
        `x // c % (n*k) * s`, until no more pairs can be merged"""
        an = self.analyzer
        args = list(args)
        changed = True
        while changed:
            changed = False
            for i, j in itertools.permutations(range(len(args)), 2):
                outer, inner = args[i], args[j]
                if (
                    outer.source == inner.source
                    and an.can_prove_equal(
                        outer.lower_factor, inner.lower_factor * inner.extent
                    )
                    and an.can_prove_equal(outer.scale, inner.scale * inner.extent)
                ):
                    args[min(i, j)] = IterSplitExpr(
                        inner.source,
                        inner.lower_factor,
                        an.simplify(outer.extent * inner.extent),
                        inner.scale,
                    )
                    del args[max(i, j)]
                    changed = True
                    break
        return args

    def _fuse(self, s: IterSumExpr) -> IterSplitExpr:
        args = self._combine_splits(s.args)
        if len(args) == 1:
            return args[0]

        scales = [const_int(a.scale) for a in args]
        candidates = [c for c in scales if c is not None and c > 0]
        if not candidates:
            raise IterMapError(f"no constant positive scale among {s}")
        base_scale = min(candidates)

        # chain the splits from the least significant one upward; each scale
        # must be the product of the extents below it
        remaining = list(args)
        chain = []
        expected = IR.Const(1)
        while remaining:
            target = IR.Const(base_scale) * expected
            for k, a in enumerate(remaining):
                if self.analyzer.can_prove_equal(a.scale, target):
                    break
            else:
                raise IterMapError(f"cannot fuse {s}: no split with scale {target}")
            a = remaining.pop(k)
            chain.append(IterSplitExpr(a.source, a.lower_factor, a.extent, expected))
            expected = self.analyzer.simplify(expected * a.extent)

        chain.reverse()
        mark = SumMark(IterSumExpr(chain, IR.Const(0)), expected)
        return IterSplitExpr(mark, IR.Const(1), expected, IR.Const(base_scale))

    def _floordiv(self, s: IterSumExpr, divisor: IR.expr) -> IterSumExpr:
        an = self.analyzer
        c = const_int(divisor)
        if c is None or c <= 0:
            raise IterMapError(f"non-constant or non-positive divisor {divisor}")

        split = self._fuse(s)
        if an.can_prove_divisible(split.scale, c):
            # (s * c * k + base) // c  ==>  s * k + base // c
            scaled = IterSplitExpr(
                split.source,
                split.lower_factor,
                split.extent,
                an.simplify(split.scale // c),
            )
            return IterSumExpr([scaled], an.simplify(s.base // c))

        scale = const_int(split.scale)
        if scale is None or c % scale != 0 or not an.can_prove_divisible(s.base, scale):
            raise IterMapError(f"cannot divide {s} by {c}")

        # (s * scale + base) // (scale * m)  ==>  (s + base') // m
        m = c // scale
        base = an.simplify(s.base // scale)
        if not an.can_prove_divisible(base, m):
            raise IterMapError(f"offset {s.base} is not aligned to {c}")
        base = an.simplify(base // m)

        if an.can_prove(le(split.extent, m)):
            return IterSumExpr([], base)
        if not an.can_prove_divisible(split.extent, m):
            raise IterMapError(f"extent {split.extent} is not divisible by {m}")
        inner = IterSplitExpr(
            split.source,
            an.simplify(split.lower_factor * m),
            an.simplify(split.extent // m),
            IR.Const(1),
        )
        return IterSumExpr([inner], base)

    def _floormod(self, s: IterSumExpr, divisor: IR.expr) -> IterSumExpr:
        an = self.analyzer
        c = const_int(divisor)
        if c is None or c <= 0:
            raise IterMapError(f"non-constant or non-positive divisor {divisor}")

        split = self._fuse(s)
        if an.can_prove_divisible(split.scale, c):
            return IterSumExpr([], an.simplify(s.base % c))

        scale = const_int(split.scale)
        if scale is None or c % scale != 0 or not an.can_prove_divisible(s.base, c):
            raise IterMapError(f"cannot take {s} modulo {c}")

        # (s * scale + base) % (scale * m)  ==>  (s % m) * scale
        m = c // scale
        if an.can_prove(le(split.extent, m)):
            return IterSumExpr([split], IR.Const(0))
        if not an.can_prove_divisible(split.extent, m):
            raise IterMapError(f"extent {split.extent} is not divisible by {m}")
        inner = IterSplitExpr(
            split.source, split.lower_factor, IR.Const(m), split.scale
        )
        return IterSumExpr([inner], IR.Const(0))

    # ------------------------------------------------------------------ #

    def check_bijective(self, sums):
        """Every input iterator must be used, and the splits of each one
        must tile its domain exactly"""
        an = self.analyzer
        used = {var: [] for var in self.var_map}

        def visit(s):
            for split in s.args:
                if isinstance(split.source, VarMark):
                    used[split.source.var].append(split)
                else:
                    visit(split.source.sum)

        for s in sums:
            visit(s)

        for var, splits in used.items():
            if not splits:
                raise IterMapError(f"iterator {var!r} is unused")
            mark = splits[0].source
            if any(const_int(sp.lower_factor) is None for sp in splits):
                raise IterMapError(f"symbolic lower factor for {var!r}")
            covered = IR.Const(1)
            for sp in sorted(splits, key=lambda sp: const_int(sp.lower_factor)):
                if not an.can_prove_equal(sp.lower_factor, covered):
                    raise IterMapError(f"splits of {var!r} overlap or leave a gap")
                covered = an.simplify(covered * sp.extent)
            if not an.can_prove_equal(covered, mark.extent):
                raise IterMapError(f"splits of {var!r} do not cover its domain")


# --------------------------------------------------------------------------- #
# --------------------------------------------------------------------------- #
# Entry point


def detect_iter_map(
    indices,
    input_iters: dict,
    predicate=True,
    require_bijective=False,
    analyzer: Analyzer = None,
):
    """
    Express every expression in `indices` as a sum of splits of the loop
    variables in `input_iters` (Sym -> Range). Returns one IterSumExpr per
    index, or an empty list if no such decomposition exists.

    The predicate is only checked, never used to narrow the domains in
    `input_iters`. Unless it simplifies to True over those domains, there is
    no decomposition, even when the indices would be affine on the subset
    of points it selects.
    """
    analyzer = analyzer or Analyzer()
    input_iters = {
        (v.name if isinstance(v, IR.Var) else v): rng for v, rng in input_iters.items()
    }
    for var, rng in input_iters.items():
        if not isinstance(var, Sym) or not isinstance(rng, Range):
            raise TypeError("input iterators must map Syms to Ranges")

    with analyzer.scope(input_iters):
        pred = analyzer.simplify(as_expr(predicate))
        if not is_const(pred, True):
            logger.debug("unsupported iteration predicate: %s", pred)
            return []

        rewriter = IterMapRewriter(input_iters, analyzer)
        try:
            results = [rewriter.normalize(rewriter.rewrite(as_expr(e))) for e in indices]
            if require_bijective:
                rewriter.check_bijective(results)
        except IterMapError as err:
            logger.debug("no affine decomposition: %s", err)
            return []

    return results
