"""
Exception taxonomy shared by the View model and every kernel.

Validation errors are raised before any output byte is written. Resource
errors (allocation, transfers) come straight from torch and are not wrapped.
"""


class KernelError(Exception):
    """Base class for errors raised by cpu_llm_kernels."""


class ValidationError(KernelError, ValueError):
    """An operand or argument violates the operation's contract."""


class DeviceMismatchError(ValidationError):
    pass


class DTypeMismatchError(ValidationError):
    pass


class ShapeMismatchError(ValidationError):
    pass


class ContiguityError(ValidationError):
    pass


class IndexOutOfRangeError(ValidationError, IndexError):
    """Bad permutation order, slice bounds, or a View escaping its Storage."""


class UnsupportedConfigError(KernelError, RuntimeError):
    """The request is well-formed but not something this build can execute."""


class UnsupportedDeviceError(UnsupportedConfigError):
    pass


class UnsupportedDTypeError(UnsupportedConfigError):
    pass
