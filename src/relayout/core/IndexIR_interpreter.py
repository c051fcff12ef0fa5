from .IndexIR import IR


class InterpretError(Exception):
    pass


def interpret(e: IR.expr, env: dict):
    """Evaluate `e` with every free variable bound to an int in `env`"""
    if isinstance(e, IR.Var):
        if e.name not in env:
            raise InterpretError(f"unbound variable {e.name!r}")
        return env[e.name]

    elif isinstance(e, IR.Const):
        return e.val

    elif isinstance(e, IR.USub):
        return -interpret(e.arg, env)

    elif isinstance(e, IR.BinOp):
        if e.op == "and":
            return bool(interpret(e.lhs, env)) and bool(interpret(e.rhs, env))
        elif e.op == "or":
            return bool(interpret(e.lhs, env)) or bool(interpret(e.rhs, env))

        lhs = interpret(e.lhs, env)
        rhs = interpret(e.rhs, env)
        if e.op == "+":
            return lhs + rhs
        elif e.op == "-":
            return lhs - rhs
        elif e.op == "*":
            return lhs * rhs
        elif e.op in ("//", "%"):
            if rhs == 0:
                raise InterpretError(f"division by zero in {e}")
            return lhs // rhs if e.op == "//" else lhs % rhs
        elif e.op == "<":
            return lhs < rhs
        elif e.op == "<=":
            return lhs <= rhs
        elif e.op == ">":
            return lhs > rhs
        elif e.op == ">=":
            return lhs >= rhs
        elif e.op == "==":
            return lhs == rhs
        else:
            assert False, f"bad binop: {e.op}"

    else:
        assert False, f"bad case: {type(e)}"
