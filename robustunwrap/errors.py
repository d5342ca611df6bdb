# robustunwrap/errors.py
"""Exceptions raised by the robust phase unwrapping routines."""


class RobustUnwrapError(Exception):
    """Base class for all unwrapping failures."""


class SeedOutOfBoundsError(RobustUnwrapError, ValueError):
    """The seed voxel lies outside the grid. Raised before any buffer is written."""

    def __init__(self, seed, dims):
        self.seed = tuple(seed)
        self.dims = tuple(dims)
        super().__init__(
            f"The seed {self.seed} was outside the matrix bounds {self.dims}."
        )


class QueueOverflowError(RobustUnwrapError, MemoryError):
    """
    A point queue could not grow. This is fatal to the run: the remaining bins
    are not processed and the output is left partially filled.

    The driver attaches the partial run state as `partial_result` before the
    error reaches the caller.
    """

    def __init__(self, message, capacity=None):
        self.capacity = capacity
        self.partial_result = None
        super().__init__(message)
