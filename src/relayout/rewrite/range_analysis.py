from __future__ import annotations

from collections import ChainMap
from typing import Optional, Tuple

from ..core.IndexIR import IR
from ..core.prelude import is_int

Bound = Tuple[Optional[int], Optional[int]]

_unbounded = (None, None)


# Interval arithmetic over inclusive integer bounds.  A `None` endpoint means
# that side of the interval is unknown (i.e. -inf or +inf).


def _add(a: Bound, b: Bound) -> Bound:
    lo = None if a[0] is None or b[0] is None else a[0] + b[0]
    hi = None if a[1] is None or b[1] is None else a[1] + b[1]
    return (lo, hi)


def _neg(a: Bound) -> Bound:
    lo = None if a[1] is None else -a[1]
    hi = None if a[0] is None else -a[0]
    return (lo, hi)


def _mul(a: Bound, b: Bound) -> Bound:
    if a == (0, 0) or b == (0, 0):
        return (0, 0)
    if None not in a and None not in b:
        products = [x * y for x in a for y in b]
        return (min(products), max(products))

    # one operand is a known constant
    for c, other in ((a, b), (b, a)):
        if c[0] is not None and c[0] == c[1]:
            k = c[0]
            lo = None if other[0] is None else other[0] * k
            hi = None if other[1] is None else other[1] * k
            return (lo, hi) if k > 0 else (hi, lo)

    # both operands non-negative with some open upper bound
    if a[0] is not None and b[0] is not None and a[0] >= 0 and b[0] >= 0:
        return (a[0] * b[0], None)
    return _unbounded


def _floordiv(a: Bound, b: Bound) -> Bound:
    if b[0] is not None and b[0] == b[1] and b[0] > 0:
        c = b[0]
        lo = None if a[0] is None else a[0] // c
        hi = None if a[1] is None else a[1] // c
        return (lo, hi)
    if a[0] is not None and a[0] >= 0 and b[0] is not None and b[0] > 0:
        # a non-negative numerator over a positive divisor
        return (0, a[1])
    return _unbounded


def _mod(a: Bound, b: Bound) -> Bound:
    if b[0] is not None and b[0] == b[1] and b[0] > 0:
        c = b[0]
        if a[0] is not None and a[1] is not None and a[0] // c == a[1] // c:
            return (a[0] % c, a[1] % c)
        return (0, c - 1)
    if b[0] is not None and b[0] > 0:
        hi = None if b[1] is None else b[1] - 1
        if a[0] is not None and a[0] >= 0 and a[1] is not None:
            hi = a[1] if hi is None else min(hi, a[1])
        return (0, hi)
    return _unbounded


def index_range_analysis(expr: IR.expr, env: ChainMap | dict = {}) -> Bound:
    """
    Based on the supplied [env], which maps Syms to inclusive (lo, hi)
    bounds, recursively computes bounds on the possible values of [expr].
    Variables missing from [env] are unbounded.
    """
    assert isinstance(expr, IR.expr)
    assert isinstance(env, (ChainMap, dict))

    def analyze_range(expr) -> Bound:
        if isinstance(expr, IR.Var):
            return env.get(expr.name, _unbounded)
        elif isinstance(expr, IR.Const):
            if not is_int(expr.val):
                return (int(expr.val), int(expr.val))
            return (expr.val, expr.val)
        elif isinstance(expr, IR.USub):
            return _neg(analyze_range(expr.arg))
        elif isinstance(expr, IR.BinOp):
            if expr.op in ("<", ">", "<=", ">=", "==", "and", "or"):
                return (0, 1)
            lhs_range = analyze_range(expr.lhs)
            rhs_range = analyze_range(expr.rhs)
            if expr.op == "+":
                return _add(lhs_range, rhs_range)
            elif expr.op == "-":
                return _add(lhs_range, _neg(rhs_range))
            elif expr.op == "*":
                return _mul(lhs_range, rhs_range)
            elif expr.op == "//":
                return _floordiv(lhs_range, rhs_range)
            elif expr.op == "%":
                return _mod(lhs_range, rhs_range)
            else:
                assert False, "invalid binop in index expression"
        else:
            assert False, "invalid expr in index expression"

    return analyze_range(expr)


def constant_bound(expr, env) -> Bound:
    """
    Returns inclusive constant integer bounds for [expr]. Either side is
    None when no constant bound could be found.
    """
    if is_int(expr):
        return (expr, expr)
    return index_range_analysis(expr, env)
