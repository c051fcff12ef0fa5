from __future__ import annotations

from dataclasses import dataclass, field

from asdl_adt import ADT, validators

from .prelude import Sym, extclass, is_int, is_valid_name


# --------------------------------------------------------------------------- #
# Validated string subtypes
# --------------------------------------------------------------------------- #

comparison_ops = {"<", ">", "<=", ">=", "=="}
arithmetic_ops = {"+", "-", "*", "//", "%"}
logical_ops = {"and", "or"}

front_ops = comparison_ops | arithmetic_ops | logical_ops


class Operator(str):
    def __new__(cls, op):
        op = str(op)
        if op in front_ops:
            return super().__new__(cls, op)
        raise ValueError(f"invalid operator: {op}")


def _const_val(val):
    # bools are ints in Python, and are kept as the truth constants
    if isinstance(val, int):
        return val
    raise validators.ValidationError(int, type(val))


# --------------------------------------------------------------------------- #
# Index IR
#
# `//` and `%` are floor division and floor modulo, as in Python.
# --------------------------------------------------------------------------- #

IR = ADT(
    """
module IndexIR {
    expr = Var( sym name )
         | Const( const val )
         | USub( expr arg )  -- i.e.  -(...)
         | BinOp( binop op, expr lhs, expr rhs )
}""",
    ext_types={
        "sym": Sym,
        "const": _const_val,
        "binop": validators.instance_of(Operator, convert=True),
    },
)


# True and 1 are different constants
@extclass(IR.Const)
def __eq__(self, rhs):
    return (
        isinstance(rhs, IR.Const)
        and type(self.val) is type(rhs.val)
        and self.val == rhs.val
    )


@extclass(IR.Const)
def __hash__(self):
    return hash((IR.Const, type(self.val), self.val))


del __eq__, __hash__


# --------------------------------------------------------------------------- #
# Operator overloads
# --------------------------------------------------------------------------- #


@extclass(IR.expr)
def __add__(self, rhs):
    return IR.BinOp("+", self, as_expr(rhs))


@extclass(IR.expr)
def __radd__(self, lhs):
    return IR.BinOp("+", as_expr(lhs), self)


@extclass(IR.expr)
def __sub__(self, rhs):
    return IR.BinOp("-", self, as_expr(rhs))


@extclass(IR.expr)
def __rsub__(self, lhs):
    return IR.BinOp("-", as_expr(lhs), self)


@extclass(IR.expr)
def __mul__(self, rhs):
    return IR.BinOp("*", self, as_expr(rhs))


@extclass(IR.expr)
def __rmul__(self, lhs):
    return IR.BinOp("*", as_expr(lhs), self)


@extclass(IR.expr)
def __floordiv__(self, rhs):
    return IR.BinOp("//", self, as_expr(rhs))


@extclass(IR.expr)
def __rfloordiv__(self, lhs):
    return IR.BinOp("//", as_expr(lhs), self)


@extclass(IR.expr)
def __mod__(self, rhs):
    return IR.BinOp("%", self, as_expr(rhs))


@extclass(IR.expr)
def __rmod__(self, lhs):
    return IR.BinOp("%", as_expr(lhs), self)


@extclass(IR.expr)
def __neg__(self):
    return IR.USub(self)


del __add__, __radd__, __sub__, __rsub__, __mul__, __rmul__
del __floordiv__, __rfloordiv__, __mod__, __rmod__, __neg__


def as_expr(x) -> IR.expr:
    if isinstance(x, IR.expr):
        return x
    elif isinstance(x, Sym):
        return IR.Var(x)
    elif isinstance(x, int):
        return IR.Const(x)
    raise TypeError(f"cannot convert {type(x)} to an index expression")


def lt(lhs, rhs):
    return IR.BinOp("<", as_expr(lhs), as_expr(rhs))


def le(lhs, rhs):
    return IR.BinOp("<=", as_expr(lhs), as_expr(rhs))


def logical_and(lhs, rhs):
    return IR.BinOp("and", as_expr(lhs), as_expr(rhs))


def const_int(e):
    """The integer value of `e` if it is an integer constant, else None"""
    if isinstance(e, IR.Const) and is_int(e.val):
        return e.val
    return None


def is_const(e, val=None):
    if not isinstance(e, IR.Const):
        return False
    return val is None or IR.Const(val) == e


# --------------------------------------------------------------------------- #
# Generic traversals
# --------------------------------------------------------------------------- #


def substitute(e: IR.expr, env: dict) -> IR.expr:
    """Replace every variable in `env` (Sym -> expr) by its image"""
    if isinstance(e, IR.Var):
        return as_expr(env[e.name]) if e.name in env else e
    elif isinstance(e, IR.Const):
        return e
    elif isinstance(e, IR.USub):
        return IR.USub(substitute(e.arg, env))
    elif isinstance(e, IR.BinOp):
        return IR.BinOp(e.op, substitute(e.lhs, env), substitute(e.rhs, env))
    else:
        assert False, f"bad case: {type(e)}"


# --------------------------------------------------------------------------- #
# Loop nest and buffer descriptions
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class Range:
    """The half-open interval [min, min + extent)"""

    min: IR.expr
    extent: IR.expr

    def __post_init__(self):
        object.__setattr__(self, "min", as_expr(self.min))
        object.__setattr__(self, "extent", as_expr(self.extent))


@dataclass(frozen=True)
class Loop:
    var: Sym
    min: IR.expr
    extent: IR.expr

    def __post_init__(self):
        if isinstance(self.var, IR.Var):
            object.__setattr__(self, "var", self.var.name)
        if not isinstance(self.var, Sym):
            raise TypeError(f"loop variable must be a Sym, but got {type(self.var)}")
        object.__setattr__(self, "min", as_expr(self.min))
        object.__setattr__(self, "extent", as_expr(self.extent))

    def dom(self) -> Range:
        return Range(self.min, self.extent)


@dataclass(frozen=True)
class Buffer:
    name: str
    shape: tuple
    strides: tuple = field(default=())

    def __post_init__(self):
        if not is_valid_name(self.name):
            raise TypeError(f"expected an alphanumeric name string, but got '{self.name}'")
        object.__setattr__(self, "shape", tuple(as_expr(s) for s in self.shape))
        object.__setattr__(self, "strides", tuple(as_expr(s) for s in self.strides))

    @property
    def ndim(self):
        return len(self.shape)


from . import IndexIR_pprint  # noqa: E402
