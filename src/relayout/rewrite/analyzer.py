from __future__ import annotations

from collections import ChainMap
from contextlib import contextmanager

from ..core.IndexIR import IR, Range, as_expr, const_int, is_const
from ..core.prelude import Sym
from .canonicalize import canonicalize, from_linear_form, linear_form
from .range_analysis import constant_bound


# --------------------------------------------------------------------------- #
# --------------------------------------------------------------------------- #
# Arithmetic analyzer: range facts about variables + an index simplifier


class Analyzer:
    """
    Holds range facts about variables and simplifies index expressions
    using them.

    An Analyzer is a mutable context owned by a single logical analysis.
    Facts added with `bind` persist until the enclosing scope (if any) is
    exited; `scope()` can be used to add temporary facts.
    """

    def __init__(self):
        self._ranges = ChainMap()
        self._bounds = ChainMap()

    # ------------------------------------------------------------------ #
    # range facts

    def bind(self, sym, rng: Range, allow_override=True):
        if isinstance(sym, IR.Var):
            sym = sym.name
        if not isinstance(sym, Sym):
            raise TypeError(f"expected a Sym, but got {type(sym)}")
        if not isinstance(rng, Range):
            raise TypeError(f"expected a Range, but got {type(rng)}")
        prev = self.get_range(sym)
        if not allow_override and prev is not None and prev != rng:
            raise ValueError(
                f"{sym!r} is already bound to [{prev.min}, {prev.min} + {prev.extent})"
            )

        lo, _ = self.const_bound(rng.min)
        _, hi = self.const_bound(IR.BinOp("+", rng.min, rng.extent))
        if hi is not None:
            hi = hi - 1  # the range is half-open

        # an empty range, e.g. `Range(4, 0)`, carries no information
        if lo is not None and hi is not None and lo > hi:
            lo, hi = None, None

        self._ranges[sym] = rng
        self._bounds[sym] = (lo, hi)

    def get_range(self, sym):
        return self._ranges.get(sym)

    def enter_scope(self):
        self._ranges = self._ranges.new_child()
        self._bounds = self._bounds.new_child()

    def exit_scope(self):
        self._ranges = self._ranges.parents
        self._bounds = self._bounds.parents

    @contextmanager
    def scope(self, bindings=None):
        self.enter_scope()
        try:
            for sym, rng in (bindings or {}).items():
                self.bind(sym, rng)
            yield self
        finally:
            self.exit_scope()

    # ------------------------------------------------------------------ #
    # queries

    def const_bound(self, e):
        return constant_bound(as_expr(e), self._bounds)

    def can_prove(self, pred) -> bool:
        return is_const(self.simplify(pred), True)

    def can_prove_equal(self, lhs, rhs) -> bool:
        return is_const(self.simplify(as_expr(lhs) - as_expr(rhs)), 0)

    def can_prove_divisible(self, e, c) -> bool:
        return is_const(self.simplify(as_expr(e) % as_expr(c)), 0)

    # ------------------------------------------------------------------ #
    # simplification

    def simplify(self, e) -> IR.expr:
        return self._simplify(as_expr(e))

    def _simplify(self, e):
        if isinstance(e, IR.Var):
            return self._fold_bound(e)

        elif isinstance(e, IR.Const):
            return e

        elif isinstance(e, IR.USub):
            return self._fold_bound(canonicalize(IR.USub(self._simplify(e.arg))))

        elif isinstance(e, IR.BinOp):
            if e.op in ("and", "or"):
                return self._simplify_logical(e)

            lhs = self._simplify(e.lhs)
            rhs = self._simplify(e.rhs)
            if e.op in ("+", "-", "*"):
                return self._fold_bound(canonicalize(IR.BinOp(e.op, lhs, rhs)))
            elif e.op == "//":
                return self._simplify_floordiv(lhs, rhs)
            elif e.op == "%":
                return self._simplify_floormod(lhs, rhs)
            else:
                return self._simplify_cmp(e.op, lhs, rhs)

        else:
            assert False, f"bad case: {type(e)}"

    def _fold_bound(self, e):
        lo, hi = self.const_bound(e)
        if lo is not None and lo == hi:
            return IR.Const(lo)
        return e

    def _simplify_floordiv(self, lhs, rhs):
        c = const_int(rhs)
        if c is None or c <= 0:
            if c is not None and c < 0 and const_int(lhs) is not None:
                return IR.Const(const_int(lhs) // c)
            return self._fold_bound(IR.BinOp("//", lhs, rhs))
        if c == 1:
            return lhs

        # (x // a) // b  ==>  x // (a * b)
        if isinstance(lhs, IR.BinOp) and lhs.op == "//":
            d = const_int(lhs.rhs)
            if d is not None and d > 0:
                return self._simplify_floordiv(lhs.lhs, IR.Const(c * d))

        # (c * q + r) // c  ==>  q + r // c
        terms, k = linear_form(lhs)
        q_const, r_const = divmod(k, c)
        quot = from_linear_form(
            [(coeff // c, m) for coeff, m in terms if coeff % c == 0], q_const
        )
        rem = from_linear_form(
            [(coeff, m) for coeff, m in terms if coeff % c != 0], r_const
        )

        lo, hi = self.const_bound(rem)
        if lo is not None and hi is not None and lo // c == hi // c:
            result = IR.BinOp("+", quot, IR.Const(lo // c))
        else:
            result = IR.BinOp("+", quot, IR.BinOp("//", rem, IR.Const(c)))
        return self._fold_bound(canonicalize(result))

    def _simplify_floormod(self, lhs, rhs):
        c = const_int(rhs)
        if c is None or c <= 0:
            if c is not None and c < 0 and const_int(lhs) is not None:
                return IR.Const(const_int(lhs) % c)
            return self._fold_bound(IR.BinOp("%", lhs, rhs))
        if c == 1:
            return IR.Const(0)

        # (c * q + r) % c  ==>  r % c
        terms, k = linear_form(lhs)
        rem = from_linear_form(
            [(coeff, m) for coeff, m in terms if coeff % c != 0], k % c
        )

        # (x % (c * n)) % c  ==>  x % c
        if isinstance(rem, IR.BinOp) and rem.op == "%":
            d = const_int(rem.rhs)
            if d is not None and d > 0 and d % c == 0:
                return self._simplify_floormod(rem.lhs, rhs)

        lo, hi = self.const_bound(rem)
        if lo is not None and hi is not None and lo // c == hi // c:
            return self._fold_bound(
                canonicalize(IR.BinOp("-", rem, IR.Const(lo // c * c)))
            )
        return self._fold_bound(IR.BinOp("%", rem, IR.Const(c)))

    def _simplify_cmp(self, op, lhs, rhs):
        lo, hi = self.const_bound(canonicalize(IR.BinOp("-", lhs, rhs)))

        if op == "<":
            proved = hi is not None and hi < 0
            refuted = lo is not None and lo >= 0
        elif op == "<=":
            proved = hi is not None and hi <= 0
            refuted = lo is not None and lo > 0
        elif op == ">":
            proved = lo is not None and lo > 0
            refuted = hi is not None and hi <= 0
        elif op == ">=":
            proved = lo is not None and lo >= 0
            refuted = hi is not None and hi < 0
        else:
            assert op == "=="
            proved = lo == 0 and hi == 0
            refuted = (lo is not None and lo > 0) or (hi is not None and hi < 0)

        if proved:
            return IR.Const(True)
        elif refuted:
            return IR.Const(False)
        return IR.BinOp(op, lhs, rhs)

    def _simplify_logical(self, e):
        lhs = self._simplify(e.lhs)
        rhs = self._simplify(e.rhs)
        if e.op == "and":
            if is_const(lhs, False) or is_const(rhs, False):
                return IR.Const(False)
            if is_const(lhs, True):
                return rhs
            if is_const(rhs, True):
                return lhs
        else:
            if is_const(lhs, True) or is_const(rhs, True):
                return IR.Const(True)
            if is_const(lhs, False):
                return rhs
            if is_const(rhs, False):
                return lhs
        return IR.BinOp(e.op, lhs, rhs)
