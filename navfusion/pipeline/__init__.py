"""
Incremental fusion pipeline stages.
"""

from .source import Source, SourceSnapshot, PipelineContext
from .assembler import Assembler
from .aligner import TimeAligner, corrected_time
from .smoother import BezierSmoother
from .simplifier import DistanceSimplifier, HeadingSimplifier, promote_scalars
from .getter import Getter, find_bracket, external_estimate
from .overseer import Overseer

__all__ = [
    "Source", "SourceSnapshot", "PipelineContext",
    "Assembler", "TimeAligner", "corrected_time", "BezierSmoother",
    "DistanceSimplifier", "HeadingSimplifier", "promote_scalars",
    "Getter", "find_bracket", "external_estimate", "Overseer"
]
