from __future__ import annotations

import torch

from cpu_llm_kernels.core.device import DeviceType


class Storage:
    """
    A fixed-size raw byte buffer tagged with the device it lives on.

    The buffer is a 1-D torch.uint8 tensor. Views keep the Storage alive by
    holding a reference to it; the Storage never refers back to its Views.
    Size and device are fixed at allocation, only the bytes are mutable.
    """

    __slots__ = ("_memory", "_device_type", "_device_id")

    def __init__(self, memory: torch.Tensor, device_type: DeviceType, device_id: int = 0):
        if memory.dtype != torch.uint8 or memory.dim() != 1:
            raise TypeError("Storage memory must be a 1-D torch.uint8 tensor.")
        self._memory = memory
        self._device_type = DeviceType(device_type)
        self._device_id = int(device_id)

    @property
    def memory(self) -> torch.Tensor:
        return self._memory

    @property
    def size(self) -> int:
        return int(self._memory.numel())

    @property
    def device_type(self) -> DeviceType:
        return self._device_type

    @property
    def device_id(self) -> int:
        return self._device_id

    def region(self, offset: int, nbytes: int) -> torch.Tensor:
        """Byte range [offset, offset + nbytes) as an aliasing uint8 tensor."""
        return self._memory.narrow(0, offset, nbytes)

    def __repr__(self) -> str:
        return f"Storage(size={self.size}, device={self._device_type.name}:{self._device_id})"
