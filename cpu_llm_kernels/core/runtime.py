from __future__ import annotations

import functools
import logging

import torch

from cpu_llm_kernels.core.device import DeviceType, MemcpyKind
from cpu_llm_kernels.core.storage import Storage
from cpu_llm_kernels.errors import ValidationError

logger = logging.getLogger(__name__)


class Runtime:
    """
    Device runtime for one (device_type, device_id) pair.

    Allocation and transfer are delegated to torch; whatever torch raises
    (no CUDA build, out of memory, ...) reaches the caller unchanged. Every
    call is synchronous.
    """

    def __init__(self, device_type: DeviceType, device_id: int = 0):
        self.device_type = DeviceType(device_type)
        self.device_id = int(device_id)

    @property
    def torch_device(self) -> torch.device:
        return self.device_type.torch_device(self.device_id)

    def allocate_host_storage(self, nbytes: int) -> Storage:
        # Host staging buffers for an accelerator are page-locked when possible.
        pin = not self.device_type.is_host and torch.cuda.is_available()
        memory = torch.empty(nbytes, dtype=torch.uint8, pin_memory=pin)
        logger.debug("allocated %d host bytes (pinned=%s)", nbytes, pin)
        device_id = self.device_id if self.device_type.is_host else 0
        return Storage(memory, DeviceType.CPU, device_id)

    def allocate_device_storage(self, nbytes: int) -> Storage:
        if self.device_type.is_host:
            return self.allocate_host_storage(nbytes)
        memory = torch.empty(nbytes, dtype=torch.uint8, device=self.torch_device)
        logger.debug("allocated %d bytes on %s", nbytes, self.torch_device)
        return Storage(memory, self.device_type, self.device_id)

    def memcpy_sync(self, dst: torch.Tensor, src: torch.Tensor, nbytes: int, kind: MemcpyKind) -> None:
        """
        Copy the first nbytes of src into dst and wait for completion.

        dst/src are uint8 byte regions (see Storage.region). kind must match
        where the two regions actually live.
        """
        expected = MemcpyKind.between(src.device.type == "cpu", dst.device.type == "cpu")
        if kind is not expected:
            raise ValidationError(f"memcpy_sync: kind {kind.value} does not match {src.device} -> {dst.device}")
        if nbytes > dst.numel() or nbytes > src.numel():
            raise ValidationError(
                f"memcpy_sync: {nbytes} bytes requested, src has {src.numel()}, dst has {dst.numel()}"
            )
        if nbytes == 0:
            return
        dst[:nbytes].copy_(src[:nbytes])
        if kind is not MemcpyKind.H2H:
            self.device_synchronize()
        logger.debug("memcpy_sync %s %d bytes", kind.value, nbytes)

    def device_synchronize(self) -> None:
        if self.device_type is DeviceType.NVIDIA:
            torch.cuda.synchronize(self.torch_device)


@functools.lru_cache(maxsize=None)
def get_runtime(device_type: DeviceType = DeviceType.CPU, device_id: int = 0) -> Runtime:
    return Runtime(DeviceType(device_type), device_id)
