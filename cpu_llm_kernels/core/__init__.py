from .device import DeviceType, MemcpyKind  # noqa: F401
from .runtime import Runtime, get_runtime  # noqa: F401
from .storage import Storage  # noqa: F401
