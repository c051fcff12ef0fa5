from .IndexIR import IR
from .prelude import extclass

# --------------------------------------------------------------------------- #
# --------------------------------------------------------------------------- #
# Operator Precedence

op_prec = {
    "or": 10,
    #
    "and": 20,
    #
    "<": 30,
    ">": 30,
    "<=": 30,
    ">=": 30,
    "==": 30,
    #
    "+": 40,
    "-": 40,
    #
    "*": 50,
    "//": 50,
    "%": 50,
    #
    # unary minus
    "~": 60,
}


# --------------------------------------------------------------------------- #
# --------------------------------------------------------------------------- #
# Index IR Pretty Printing


@extclass(IR.Var)
@extclass(IR.Const)
@extclass(IR.USub)
@extclass(IR.BinOp)
def __str__(e):
    return _print_expr(e)


@extclass(IR.Var)
@extclass(IR.Const)
@extclass(IR.USub)
@extclass(IR.BinOp)
def __repr__(e):
    return f"{type(e).__name__}({_print_expr(e)})"


del __str__
del __repr__


def _print_expr(e, prec: int = 0) -> str:
    if isinstance(e, IR.Var):
        return str(e.name)

    elif isinstance(e, IR.Const):
        return str(e.val)

    elif isinstance(e, IR.USub):
        return f'-{_print_expr(e.arg, prec=op_prec["~"])}'

    elif isinstance(e, IR.BinOp):
        local_prec = op_prec[e.op]
        # increment rhs by 1 to account for left-associativity
        lhs = _print_expr(e.lhs, prec=local_prec)
        rhs = _print_expr(e.rhs, prec=local_prec + 1)
        s = f"{lhs} {e.op} {rhs}"
        # if we have a lower precedence than the environment...
        if local_prec < prec:
            s = f"({s})"
        return s

    else:
        assert False, f"unrecognized expr type: {type(e)}"
