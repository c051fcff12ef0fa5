from __future__ import annotations

from typing import Callable, List

from .IndexIR import IR, Range, as_expr, substitute
from .IndexIR_interpreter import interpret
from .prelude import Sym


class IndexMap:
    """
    A mapping from `len(initial_indices)` input coordinates to
    `len(final_indices)` output index expressions.
    """

    def __init__(self, initial_indices: List[Sym], final_indices: List[IR.expr]):
        for sym in initial_indices:
            if not isinstance(sym, Sym):
                raise TypeError(f"expected a Sym, but got {type(sym)}")
        self._initial = list(initial_indices)
        self._final = [as_expr(e) for e in final_indices]

    @staticmethod
    def from_func(ndim: int, mapping_function: Callable, prefix="ax") -> IndexMap:
        """Build the map by calling `mapping_function` on `ndim` fresh
        variables named `ax0`, `ax1`, ..."""
        initial = [Sym(f"{prefix}{k}") for k in range(ndim)]
        final = mapping_function(*[IR.Var(sym) for sym in initial])
        return IndexMap(initial, list(final))

    @property
    def initial_indices(self):
        return list(self._initial)

    @property
    def final_indices(self):
        return list(self._final)

    @property
    def ndim(self):
        return len(self._initial)

    def map_indices(self, indices, analyzer=None) -> List[IR.expr]:
        if len(indices) != self.ndim:
            raise ValueError(f"expected {self.ndim} indices, but got {len(indices)}")
        env = {sym: as_expr(idx) for sym, idx in zip(self._initial, indices)}
        results = [substitute(e, env) for e in self._final]
        if analyzer is not None:
            results = [analyzer.simplify(e) for e in results]
        return results

    def evaluate(self, coords) -> tuple:
        if len(coords) != self.ndim:
            raise ValueError(f"expected {self.ndim} coordinates, but got {len(coords)}")
        env = dict(zip(self._initial, coords))
        return tuple(interpret(e, env) for e in self._final)

    def map_shape(self, shape, analyzer=None) -> List[IR.expr]:
        """The extent of each output index when every input index `k`
        ranges over [0, shape[k])"""
        from ..rewrite.analyzer import Analyzer

        if len(shape) != self.ndim:
            raise ValueError(f"expected {self.ndim} extents, but got {len(shape)}")
        analyzer = analyzer or Analyzer()
        bindings = {sym: Range(0, ext) for sym, ext in zip(self._initial, shape)}

        extents = []
        with analyzer.scope(bindings):
            for e in self._final:
                lo, hi = analyzer.const_bound(analyzer.simplify(e))
                if lo is None or hi is None:
                    raise ValueError(f"cannot bound the extent of {e}")
                extents.append(IR.Const(hi - lo + 1))
        return extents

    def is_equivalent_to(self, other: IndexMap) -> bool:
        """Structural equality up to renaming of the initial indices"""
        if not isinstance(other, IndexMap) or self.ndim != other.ndim:
            return False
        if len(self._final) != len(other._final):
            return False
        renamed = other.map_indices([IR.Var(sym) for sym in self._initial])
        return all(a == b for a, b in zip(self._final, renamed))

    def __eq__(self, other):
        if not isinstance(other, IndexMap):
            return NotImplemented
        return self.is_equivalent_to(other)

    __hash__ = None

    def __str__(self):
        args = ", ".join(str(sym) for sym in self._initial)
        results = ", ".join(str(e) for e in self._final)
        if len(self._final) == 1:
            results += ","
        return f"lambda {args}: ({results})"

    def __repr__(self):
        return f"IndexMap({self})"
