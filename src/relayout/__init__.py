from .API import suggest_index_map
from .core.prelude import Sym
from .core.IndexIR import IR, Range, Loop, Buffer
from .core.index_map import IndexMap
from .rewrite.analyzer import Analyzer
from .rewrite.iter_affine_map import detect_iter_map
from .rewrite.layout import LayoutInternalError, get_strides

__version__ = "0.1.0"

__all__ = [
    "suggest_index_map",
    "Sym",
    "IR",
    "Range",
    "Loop",
    "Buffer",
    "IndexMap",
    "Analyzer",
    "detect_iter_map",
    "get_strides",
    "LayoutInternalError",
]
