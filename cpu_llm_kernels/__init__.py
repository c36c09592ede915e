"""
Strided tensor views and float32-accumulating CPU kernels for transformer inference.
"""

from .config import KernelConfig, configure_logging, get_config  # noqa: F401
from .core import DeviceType, MemcpyKind, Runtime, Storage, get_runtime  # noqa: F401
from .dtypes import DType, dsize  # noqa: F401
from .errors import (  # noqa: F401
    ContiguityError,
    DeviceMismatchError,
    DTypeMismatchError,
    IndexOutOfRangeError,
    KernelError,
    ShapeMismatchError,
    UnsupportedConfigError,
    UnsupportedDeviceError,
    UnsupportedDTypeError,
    ValidationError,
)
from .tensor import Tensor, TensorMeta  # noqa: F401
from . import ops  # noqa: F401
