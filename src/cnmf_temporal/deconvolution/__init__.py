from .base import BaseDeconvolver, DeconvolutionResult
from .constrained import ConstrainedFoopsi
from .dual import LagrangianDual
from .mcem import MCEMFoopsi
from .nnls import PenalizedFit, PenalizedSystem, nnls_gram
from .noise import estimate_parameters, estimate_time_constant, get_noise
from .projection import TraceProjector
from .sampler import PosteriorSampler

__all__ = [
    "BaseDeconvolver",
    "ConstrainedFoopsi",
    "DeconvolutionResult",
    "LagrangianDual",
    "MCEMFoopsi",
    "PenalizedFit",
    "PenalizedSystem",
    "PosteriorSampler",
    "TraceProjector",
    "estimate_parameters",
    "estimate_time_constant",
    "get_noise",
    "nnls_gram",
]
