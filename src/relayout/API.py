from typing import List, Optional

from .core.IndexIR import Buffer, Loop, as_expr
from .core.index_map import IndexMap
from .rewrite.analyzer import Analyzer
from .rewrite import layout

# --------------------------------------------------------------------------- #
# --------------------------------------------------------------------------- #
# Top-level entry point


def suggest_index_map(
    buffer: Buffer, indices, loops: List[Loop], predicate=True
) -> Optional[IndexMap]:
    """
    Suggest a new layout for `buffer`, given the access `buffer[indices]`
    made inside `loops` (outermost first) under `predicate`.

    Returns an IndexMap from the buffer's current coordinates to the
    suggested ones, or None if the access pattern gives no suggestion.
    Every call analyzes with its own Analyzer.
    """
    if not isinstance(buffer, Buffer):
        raise TypeError(f"expected a Buffer, but got {type(buffer)}")
    if len(indices) != len(buffer.shape):
        raise ValueError(
            f"buffer '{buffer.name}' has {len(buffer.shape)} dimensions, "
            f"but is accessed with {len(indices)} indices"
        )
    for loop in loops:
        if not isinstance(loop, Loop):
            raise TypeError(f"expected a Loop, but got {type(loop)}")

    analyzer = Analyzer()
    return layout.suggest_index_map(
        buffer, [as_expr(i) for i in indices], list(loops), as_expr(predicate), analyzer
    )
