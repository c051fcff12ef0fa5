import sympy as sm
from functools import reduce
from typing import List, Tuple

from ..core.IndexIR import IR
from ..core.prelude import is_int

# A linear form is a list of (coefficient, monomial) pairs plus a constant.
# Monomials are products of "atoms": variables and any sub-expression that is
# not polynomial (floor division, modulo, comparisons, ...).
LinearForm = Tuple[List[Tuple[int, IR.expr]], int]


class SympyTable:
    """Two-way mapping between IR atoms and sympy Dummy symbols.

    Atoms are numbered in order of first occurrence, which gives the
    ordering of terms when lowering back to IR."""

    def __init__(self):
        self._to_ir = dict()
        self._to_sm = dict()

    def atom(self, e: IR.expr) -> sm.Dummy:
        sym = self._to_sm.get(e)
        if sym is None:
            sym = sm.Dummy(str(e), integer=True)
            self._to_sm[e] = sym
            self._to_ir[sym] = e
        return sym

    def lookup(self, sym: sm.Dummy) -> IR.expr:
        return self._to_ir[sym]

    def order(self, sym: sm.Dummy) -> int:
        return list(self._to_ir).index(sym)


# --------------------------------------------------------------------------- #
# Lifting the polynomial skeleton of an index expression to sympy
# --------------------------------------------------------------------------- #


def lift_to_sympy(e: IR.expr, table: SympyTable) -> sm.Expr:
    if isinstance(e, IR.Const) and is_int(e.val):
        return sm.Integer(e.val)

    elif isinstance(e, IR.USub):
        return -lift_to_sympy(e.arg, table)

    elif isinstance(e, IR.BinOp) and e.op in ("+", "-", "*"):
        lhs = lift_to_sympy(e.lhs, table)
        rhs = lift_to_sympy(e.rhs, table)
        if e.op == "+":
            return lhs + rhs
        elif e.op == "-":
            return lhs - rhs
        else:
            return lhs * rhs

    # variables, booleans and non-polynomial operators stay opaque
    return table.atom(e)


def _expanded_terms(s: sm.Expr, table: SympyTable):
    terms = []
    const = 0
    for mono, coeff in sm.expand(s).as_coefficients_dict().items():
        assert coeff.is_Integer, f"non-integer coefficient {coeff}"
        coeff = int(coeff)
        if coeff == 0:
            continue
        if mono == 1:
            const += coeff
            continue

        factors = []
        for base, exp in mono.as_powers_dict().items():
            assert exp.is_Integer and exp > 0, f"unexpected power {base}**{exp}"
            factors += [base] * int(exp)
        factors.sort(key=table.order)
        terms.append((coeff, factors))

    terms.sort(key=lambda t: [table.order(f) for f in t[1]])
    return terms, const


def linear_form(e: IR.expr) -> LinearForm:
    """Expand `e` into sum(coeff * monomial) + const, in a deterministic
    order: monomials are sorted by the first occurrence of their atoms."""
    table = SympyTable()
    terms, const = _expanded_terms(lift_to_sympy(e, table), table)
    lowered = []
    for coeff, factors in terms:
        mono = reduce(
            lambda acc, f: IR.BinOp("*", acc, f), [table.lookup(f) for f in factors]
        )
        lowered.append((coeff, mono))
    return lowered, const


def from_linear_form(terms, const: int) -> IR.expr:
    acc = None
    for coeff, mono in terms:
        mag = abs(coeff)
        term = mono if mag == 1 else IR.BinOp("*", IR.Const(mag), mono)
        if acc is None:
            acc = term if coeff > 0 else IR.USub(term)
        else:
            acc = IR.BinOp("+" if coeff > 0 else "-", acc, term)

    if acc is None:
        return IR.Const(const)
    elif const > 0:
        return IR.BinOp("+", acc, IR.Const(const))
    elif const < 0:
        return IR.BinOp("-", acc, IR.Const(-const))
    return acc


def canonicalize(e: IR.expr) -> IR.expr:
    """Return a deterministic polynomial representation of `e`"""
    return from_linear_form(*linear_form(e))
