from __future__ import annotations

import logging
from typing import List, Optional

from asdl_adt import ADT

from ..core.IndexIR import IR, Buffer, Loop, Range, as_expr, const_int, is_const
from ..core.index_map import IndexMap
from ..core.prelude import Sym
from .analyzer import Analyzer
from .iter_affine_map import SumMark, VarMark, detect_iter_map

logger = logging.getLogger(__name__)


class LayoutInternalError(Exception):
    """A broken contract between the layout analysis and its collaborators.
    This is a defect, never an answer to report to the user."""


def get_strides(buffer: Buffer) -> List[IR.expr]:
    """
    Calculate the strides of the buffer, such that the flattened offset of
    an access is sum(strides[i] * indices[i]). Buffers without explicit
    strides are row-major.
    """
    if buffer.strides:
        if len(buffer.strides) != len(buffer.shape):
            raise LayoutInternalError(
                f"buffer '{buffer.name}' has {len(buffer.strides)} strides "
                f"for {len(buffer.shape)} dimensions"
            )
        return list(buffer.strides)

    ndim = len(buffer.shape)
    if ndim == 0:
        return []

    strides = [None] * ndim
    stride = IR.Const(1)
    for i in reversed(range(ndim)):
        strides[i] = stride
        stride = stride * buffer.shape[i]
    return strides


def flatten_index(strides, indices) -> IR.expr:
    flat = IR.Const(0)
    for stride, index in zip(strides, indices):
        flat = flat + stride * as_expr(index)
    return flat


# --------------------------------------------------------------------------- #
# --------------------------------------------------------------------------- #
# Split expression collection


# `source // lower_factor % extent`, with constant parameters
LayoutIR = ADT(
    """
module LayoutIR {
    split_expr = ( sym source, int lower_factor, int extent )
}""",
    ext_types={"sym": Sym},
)

SplitExpr = LayoutIR.split_expr


class SplitExprCollector:
    """
    Collects the splits of loop variables in an indexing pattern, in the
    order the affine decomposition presents them, to help decide on a
    layout transformation.
    """

    @staticmethod
    def collect(
        index: IR.expr,
        input_iters: dict,
        predicate,
        require_bijective: bool,
        analyzer: Analyzer,
        detector=detect_iter_map,
    ) -> List[SplitExpr]:
        sums = detector(
            [analyzer.simplify(index)],
            input_iters,
            predicate,
            require_bijective,
            analyzer,
        )
        if not sums:
            return []
        if len(sums) != 1:
            raise LayoutInternalError(
                f"expected one affine decomposition, but got {len(sums)}"
            )
        if len(sums[0].args) == 0:
            # the index does not depend on any loop variable
            return []

        return SplitExprCollector.visit_sum(sums[0]) or []

    @staticmethod
    def visit_split(split) -> Optional[List[SplitExpr]]:
        """The splits under `split`, or None if one of them is symbolic
        or has no valid constant extent"""
        mark = split.source
        if isinstance(mark, VarMark):
            lower_factor = const_int(split.lower_factor)
            extent = const_int(split.extent)
            if lower_factor is None or extent is None:
                logger.debug("symbolic split of %r: %s", mark.var, split)
                return None
            if extent <= 0 or lower_factor < 0:
                logger.debug("empty or negative split of %r: %s", mark.var, split)
                return None
            return [SplitExpr(mark.var, lower_factor, extent)]
        elif isinstance(mark, SumMark):
            return SplitExprCollector.visit_sum(mark.sum)
        else:
            raise LayoutInternalError(f"unexpected iterator mark: {type(mark)}")

    @staticmethod
    def visit_sum(s) -> Optional[List[SplitExpr]]:
        exprs = []
        for arg in s.args:
            sub = SplitExprCollector.visit_split(arg)
            if sub is None:
                return None
            exprs += sub
        return exprs


# --------------------------------------------------------------------------- #
# --------------------------------------------------------------------------- #
# Layout suggestion


def suggest_index_map(
    buffer: Buffer,
    indices,
    loops: List[Loop],
    predicate,
    analyzer: Analyzer,
) -> Optional[IndexMap]:
    """
    Suggest a re-layout of `buffer` for the access `buffer[indices]` made
    inside `loops`: the flattened offset is split into one dimension per
    split of a loop variable, ordered from the outermost loop inward and,
    for the same loop, from the coarsest split to the finest.

    Returns None when the access is not an affine combination of constant
    splits of the loop variables.
    """
    ndim = len(buffer.shape)
    indices = [as_expr(i) for i in indices]

    # Step 1. Collect the domains and indices of loop variables
    input_iters = dict()
    var2id = dict()
    for i, loop in enumerate(loops):
        input_iters[loop.var] = Range(loop.min, loop.extent)
        var2id[loop.var] = i

    # Step 2. Flatten the multi-dimensional index
    strides = get_strides(buffer)

    # Step 3. Detect the splits in the indexing pattern
    split_exprs = SplitExprCollector.collect(
        flatten_index(strides, indices),
        input_iters,
        predicate,
        require_bijective=False,
        analyzer=analyzer,
    )
    if not split_exprs:
        logger.debug("no layout suggestion for %s%s", buffer.name, indices)
        return None

    # Step 4. Sort the order of the split expressions
    order = canonical_order(split_exprs, var2id)

    # Step 5. Create the index mapping
    shape = buffer.shape

    def alter_layout(*new_indices):
        if len(new_indices) != len(shape):
            raise LayoutInternalError(
                f"expected {len(shape)} indices, but got {len(new_indices)}"
            )
        for var, extent in zip(new_indices, shape):
            analyzer.bind(var, Range(0, extent), allow_override=False)
        index = flatten_index(strides, new_indices)

        # Step 5.1. Split the flattened index according to `split_exprs`
        split = []
        for expr in reversed(split_exprs):
            index = analyzer.simplify(index)
            split.append(analyzer.simplify(index % expr.extent))
            index = index // expr.extent
        split.reverse()
        _check_no_remainder(analyzer.simplify(index), buffer)

        # Step 5.2. Reorder the indexing pattern according to `order`
        return [split[k] for k in order]

    return IndexMap.from_func(ndim, alter_layout)


def canonical_order(split_exprs: List[SplitExpr], var2id: dict) -> List[int]:
    """Positions of `split_exprs` sorted by loop position (outer loops
    first), then by lower factor, largest first"""
    return sorted(
        range(len(split_exprs)),
        key=lambda k: (var2id[split_exprs[k].source], -split_exprs[k].lower_factor),
    )


def _check_no_remainder(remainder, buffer):
    if is_const(remainder, 0):
        return
    if isinstance(remainder, IR.Const):
        raise LayoutInternalError(
            f"the splits of {buffer.name} do not cover its offset "
            f"(remainder {remainder})"
        )
    logger.warning(
        "cannot prove that the splits of %s cover its offset (remainder %s)",
        buffer.name,
        remainder,
    )
