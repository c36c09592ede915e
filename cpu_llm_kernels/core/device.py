from __future__ import annotations

import enum

import torch


class DeviceType(enum.IntEnum):
    CPU = 0
    NVIDIA = 1

    @property
    def is_host(self) -> bool:
        return self is DeviceType.CPU

    def torch_device(self, device_id: int = 0) -> torch.device:
        if self is DeviceType.CPU:
            return torch.device("cpu")
        return torch.device("cuda", device_id)


class MemcpyKind(enum.Enum):
    H2H = "H2H"
    H2D = "H2D"
    D2H = "D2H"
    D2D = "D2D"

    @classmethod
    def between(cls, src_on_host: bool, dst_on_host: bool) -> "MemcpyKind":
        if src_on_host:
            return cls.H2H if dst_on_host else cls.H2D
        return cls.D2H if dst_on_host else cls.D2D
