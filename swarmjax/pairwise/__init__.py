"""Pairwise evaluators: tiled all-pairs and lattice neighbourhood search."""

from ._common import PairwiseFn, PairwiseResult
from .lattice import (
    LatticeBuild,
    bucket_members,
    build_lattice,
    compute_lattice_derivatives,
    neighborhood_offsets,
)
from .tiled import compute_tiled_derivatives

__all__ = [
    "LatticeBuild",
    "PairwiseFn",
    "PairwiseResult",
    "bucket_members",
    "build_lattice",
    "compute_lattice_derivatives",
    "compute_tiled_derivatives",
    "neighborhood_offsets",
]
