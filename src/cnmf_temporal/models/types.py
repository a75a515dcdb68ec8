from enum import Enum, EnumMeta

from xarray import DataArray


class BetterEnum(EnumMeta):
    def __getitem__(cls, name):
        try:
            return super().__getitem__(name)
        except KeyError:
            options = ", ".join([f"'{key}'" for key in cls._member_map_.keys()])
            msg = f"Please choose one of {options}. '{name}' provided."
            raise ValueError(msg) from None

    def parse(cls, value):
        """Accept a member, a member name, or a member value."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if value == member.value:
                return member
        return cls[value]


class Method(Enum, metaclass=BetterEnum):
    """Per-component temporal update rules."""

    project = "project"
    constrained_foopsi = "constrained_foopsi"
    MCEM_foopsi = "MCEM_foopsi"
    MCMC = "MCMC"
    noise_constrained = "noise_constrained"


class ConvergenceState(Enum, metaclass=BetterEnum):
    INIT = "init"
    ITERATING = "iterating"
    CONVERGED = "converged"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"


class Observable(DataArray):
    """Base class for observable objects."""

    __slots__ = ()


class Footprints(Observable):
    __slots__ = ()


class Traces(Observable):
    __slots__ = ()


class Movie(Observable):
    __slots__ = ()


class Residual(Observable):
    __slots__ = ()
