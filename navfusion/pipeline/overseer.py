"""
Pipeline driver: advances every stage of every source as far as data allows.
"""

from typing import List, Callable, Dict, Tuple

from .source import Source, PipelineContext
from .assembler import Assembler
from .aligner import TimeAligner
from .smoother import BezierSmoother
from .simplifier import promote_scalars, DistanceSimplifier, HeadingSimplifier
from .getter import Getter
from ..sensors.types import SampleKind, SourceKind
from ..errors import PipelineError
from ..logging_config import get_logger

logger = get_logger(__name__)

Stage = Callable[[Source, PipelineContext], bool]

class Overseer:
    """
    Runs the per-source state machine

        assemble -> align -> smooth (positions) -> simplify (positions)

    once per advance() call. Stages never block: each one does what the
    currently available data permits and reports whether it progressed.
    The stage sequence is chosen from a table keyed by sample kind.
    """

    def __init__(self, getter: Getter):
        self.assembler = Assembler(getter)
        self.aligner = TimeAligner()

    def stages(self, source: Source, context: PipelineContext) -> Tuple[Stage, ...]:
        """Stage sequence of a source under the current configuration."""
        config = context.config
        threshold = config.distance_threshold()

        if source.descriptor.source_kind is SourceKind.COMPUTED:
            simplifier = HeadingSimplifier(threshold, config.search_radius_m)
        else:
            simplifier = DistanceSimplifier(threshold)

        table: Dict[SampleKind, Tuple[Stage, ...]] = {
            SampleKind.DATETIME: (self.assembler.run, self.aligner.run),
            SampleKind.SCALAR: (self.assembler.run, self.aligner.run, promote_scalars),
            SampleKind.POSITION: (self.assembler.run, self.aligner.run,
                                  BezierSmoother(config.quality).run, simplifier.run),
        }
        return table[source.kind]

    def advance(self, order: List[Source], context: PipelineContext) -> bool:
        """
        One pass over all sources in dependency order.

        Args:
            order: Sources, date/time first, computed sources after their bases
            context: Shared pipeline context

        Returns:
            True if any source progressed

        Raises:
            PipelineError: If a source breaks the ordering of its progress indices
        """
        progressed = False

        for source in order:
            changed = False
            for stage in self.stages(source, context):
                if stage(source, context):
                    changed = True

            if changed:
                source.publish()
                progressed = True
                logger.debug("source_advanced", source=source.source_id,
                             **source.progress_indices())

            if not source.check_invariant():
                logger.error("progress_indices_out_of_order", source=source.source_id,
                             **source.progress_indices())
                raise PipelineError(f"{source.source_id}: progress indices out of order "
                                    f"{source.progress_indices()}")

        return progressed
