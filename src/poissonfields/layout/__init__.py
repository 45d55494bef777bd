from poissonfields.layout.poisson import PlacementState, PoissonLayout
from poissonfields.layout.sequencer import sequence_transforms

__all__ = ["PlacementState", "PoissonLayout", "sequence_transforms"]
