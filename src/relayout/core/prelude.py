from re import compile as _re_compile


def is_int(obj):
    return isinstance(obj, int) and not isinstance(obj, bool)


_valid_pattern = _re_compile(r"^[a-zA-Z_]\w*$")


def is_valid_name(obj):
    return (
        isinstance(obj, str)
        and obj != "_"
        and (_valid_pattern.match(obj) is not None)  # prohibit the name '_' universally
    )


class Sym:
    """A symbolic variable. Identity is the (name, id) pair, so two Syms
    created with the same name are still different variables."""

    _unq_count = 1

    def __init__(self, nm):
        if not is_valid_name(nm):
            raise TypeError(f"expected an alphanumeric name string, but got '{nm}'")
        self._nm = nm
        self._id = Sym._unq_count
        Sym._unq_count += 1

    def __str__(self):
        return self._nm

    def __repr__(self):
        return f"{self._nm}_{self._id}"

    def __hash__(self):
        return id(self)

    def __eq__(self, rhs):
        if not isinstance(rhs, Sym):
            return False
        return self._nm == rhs._nm and self._id == rhs._id

    def __ne__(self, rhs):
        return not (self == rhs)


# from a github gist by victorlei
def extclass(cls):
    return lambda f: (setattr(cls, f.__name__, f) or f)
