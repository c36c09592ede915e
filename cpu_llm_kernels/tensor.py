from __future__ import annotations

import logging
import math
import sys
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import torch

from cpu_llm_kernels.cast import to_wide
from cpu_llm_kernels.core.device import DeviceType, MemcpyKind
from cpu_llm_kernels.core.runtime import get_runtime
from cpu_llm_kernels.core.storage import Storage
from cpu_llm_kernels.dtypes import DType
from cpu_llm_kernels.errors import (
    ContiguityError,
    IndexOutOfRangeError,
    ShapeMismatchError,
    UnsupportedDeviceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ShapeLike = Union[int, Sequence[int]]


def _as_shape(shape: ShapeLike) -> Tuple[int, ...]:
    if isinstance(shape, int):
        return (shape,)
    return tuple(int(s) for s in shape)


def _coerce_device(device_type) -> DeviceType:
    try:
        return DeviceType(device_type)
    except ValueError:
        raise UnsupportedDeviceError(f"unrecognized device type {device_type!r}") from None


def row_major_strides(shape: Sequence[int]) -> Tuple[int, ...]:
    """Element strides of the canonical layout: last dim fastest, stride 1."""
    strides = [0] * len(shape)
    stride = 1
    for i in range(len(shape) - 1, -1, -1):
        strides[i] = stride
        stride *= shape[i]
    return tuple(strides)


@dataclass(frozen=True)
class TensorMeta:
    dtype: DType
    shape: Tuple[int, ...]
    strides: Tuple[int, ...]

    def __post_init__(self):
        object.__setattr__(self, "dtype", DType.coerce(self.dtype))
        object.__setattr__(self, "shape", _as_shape(self.shape))
        object.__setattr__(self, "strides", _as_shape(self.strides))
        if len(self.shape) != len(self.strides):
            raise ShapeMismatchError(f"shape {self.shape} and strides {self.strides} differ in rank")
        if any(extent < 0 for extent in self.shape):
            raise ShapeMismatchError(f"negative extent in shape {self.shape}")


class Tensor:
    """
    A strided view over a shared Storage.

    shape/strides describe the logical layout (strides are in elements and
    may be negative or out of order after layout transforms); offset is the
    byte position of element [0, ..., 0] inside the Storage. Layout
    transforms (permute, view, slice, as_strided) share the Storage and never
    copy. contiguous(), reshape() of a non-contiguous view and to() of
    another device copy into fresh Storage.

    Views sharing a Storage may all write through it; nothing serializes
    those writes.
    """

    def __init__(self, meta: TensorMeta, storage: Storage, offset: int = 0):
        self._meta = meta
        self._storage = storage
        self._offset = int(offset)
        self._check_bounds()

    def _check_bounds(self) -> None:
        # A view that touches no element cannot escape its storage.
        if self.numel() == 0:
            return
        esize = self.element_size()
        if self._offset % esize != 0:
            raise ValidationError(f"byte offset {self._offset} is not a multiple of element size {esize}")
        lo = hi = 0
        for extent, stride in zip(self.shape, self.strides):
            span = (extent - 1) * stride
            if span < 0:
                lo += span
            else:
                hi += span
        first = self._offset + lo * esize
        end = self._offset + (hi + 1) * esize
        if first < 0 or end > self._storage.size:
            raise IndexOutOfRangeError(
                f"view {self.info()} touches bytes [{first}, {end}) outside storage of {self._storage.size} bytes"
            )

    @classmethod
    def create(
        cls,
        shape: ShapeLike,
        dtype: DType,
        device_type: DeviceType = DeviceType.CPU,
        device_id: int = 0,
    ) -> "Tensor":
        meta = TensorMeta(dtype, _as_shape(shape), row_major_strides(_as_shape(shape)))
        nbytes = math.prod(meta.shape) * meta.dtype.size
        if nbytes > sys.maxsize:
            raise ValidationError(f"create: {nbytes} bytes for shape {meta.shape} exceeds the addressable range")
        runtime = get_runtime(_coerce_device(device_type), device_id)
        return cls(meta, runtime.allocate_device_storage(nbytes))

    @classmethod
    def from_torch(cls, t: torch.Tensor, device_type: DeviceType = DeviceType.CPU, device_id: int = 0) -> "Tensor":
        out = cls.create(tuple(t.shape), DType.from_torch(t.dtype), device_type, device_id)
        out.load(t)
        return out

    # -- metadata -------------------------------------------------------

    @property
    def dtype(self) -> DType:
        return self._meta.dtype

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._meta.shape

    @property
    def strides(self) -> Tuple[int, ...]:
        return self._meta.strides

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def storage(self) -> Storage:
        return self._storage

    @property
    def device_type(self) -> DeviceType:
        return self._storage.device_type

    @property
    def device_id(self) -> int:
        return self._storage.device_id

    @property
    def ndim(self) -> int:
        return len(self._meta.shape)

    def numel(self) -> int:
        return math.prod(self._meta.shape)

    def element_size(self) -> int:
        return self._meta.dtype.size

    @property
    def nbytes(self) -> int:
        return self.numel() * self.element_size()

    def is_contiguous(self) -> bool:
        expected = 1
        for extent, stride in zip(reversed(self.shape), reversed(self.strides)):
            if stride != expected:
                return False
            expected *= extent
        return True

    def element_offset(self, index: int) -> int:
        """
        Map a row-major logical index to a physical element offset.

        The result is relative to self.offset (in elements, not bytes).
        Bounds were validated when the view was built, so any index in
        [0, numel) lands inside the Storage.
        """
        if not 0 <= index < self.numel():
            raise IndexOutOfRangeError(f"element index {index} out of range for {self.numel()} elements")
        physical = 0
        for extent, stride in zip(reversed(self.shape), reversed(self.strides)):
            index, coord = divmod(index, extent)
            physical += coord * stride
        return physical

    def physical_offsets(self, device=None) -> torch.Tensor:
        """Vectorized element_offset over every logical index, in row-major order."""
        offsets = torch.zeros((), dtype=torch.int64, device=device)
        for extent, stride in zip(self.shape, self.strides):
            offsets = offsets.unsqueeze(-1) + torch.arange(extent, dtype=torch.int64, device=device) * stride
        return offsets.reshape(-1)

    # -- layout transforms ----------------------------------------------

    def _derive(self, shape, strides, offset: int) -> "Tensor":
        return Tensor(TensorMeta(self.dtype, shape, strides), self._storage, offset)

    def permute(self, order: Sequence[int]) -> "Tensor":
        order = tuple(int(i) for i in order)
        if len(order) != self.ndim:
            raise IndexOutOfRangeError(f"permute: order {order} has {len(order)} entries, tensor has {self.ndim} dims")
        if sorted(order) != list(range(self.ndim)):
            raise IndexOutOfRangeError(f"permute: {order} is not a permutation of range({self.ndim})")
        shape = tuple(self.shape[i] for i in order)
        strides = tuple(self.strides[i] for i in order)
        return self._derive(shape, strides, self._offset)

    def view(self, shape: ShapeLike) -> "Tensor":
        shape = _as_shape(shape)
        if math.prod(shape) != self.numel():
            raise ShapeMismatchError(f"view: shape {shape} does not hold {self.numel()} elements of {self.shape}")
        if not self.is_contiguous():
            raise ContiguityError(f"view: {self.info()} is not contiguous, call contiguous() first")
        return self._derive(shape, row_major_strides(shape), self._offset)

    def reshape(self, shape: ShapeLike) -> "Tensor":
        shape = _as_shape(shape)
        if math.prod(shape) != self.numel():
            raise ShapeMismatchError(f"reshape: shape {shape} does not hold {self.numel()} elements of {self.shape}")
        if self.is_contiguous():
            return self.view(shape)
        logger.debug("reshape of non-contiguous %s materializes a copy", self.info())
        return self.contiguous().view(shape)

    def slice(self, dim: int, start: int, end: int) -> "Tensor":
        if not 0 <= dim < self.ndim:
            raise IndexOutOfRangeError(f"slice: dim {dim} out of range for {self.ndim} dims")
        if not 0 <= start <= end <= self.shape[dim]:
            raise IndexOutOfRangeError(f"slice: invalid range [{start}, {end}) for dim {dim} of extent {self.shape[dim]}")
        shape = list(self.shape)
        shape[dim] = end - start
        offset = self._offset + start * self.strides[dim] * self.element_size()
        return self._derive(shape, self.strides, offset)

    def as_strided(self, shape: ShapeLike, strides: Sequence[int], storage_offset: int = 0) -> "Tensor":
        """View the same Storage with explicit element strides; offset is in elements from this view."""
        offset = self._offset + int(storage_offset) * self.element_size()
        return self._derive(_as_shape(shape), _as_shape(strides), offset)

    # -- materialization --------------------------------------------------

    def _gather_bytes(self) -> torch.Tensor:
        memory = self._storage.memory
        esize = self.element_size()
        elements = self.physical_offsets(device=memory.device)
        byte_index = self._offset + elements.unsqueeze(-1) * esize + torch.arange(esize, device=memory.device)
        return memory[byte_index.reshape(-1)]

    def contiguous(self) -> "Tensor":
        if self.is_contiguous():
            return Tensor(self._meta, self._storage, self._offset)
        out = Tensor.create(self.shape, self.dtype, self.device_type, self.device_id)
        if out.nbytes:
            out._storage.region(0, out.nbytes).copy_(self._gather_bytes())
        logger.debug("contiguous: materialized %s into %d bytes", self.info(), out.nbytes)
        return out

    def to(self, device_type: DeviceType, device_id: int = -1) -> "Tensor":
        device_type = _coerce_device(device_type)
        if device_type is self.device_type and device_id in (-1, self.device_id):
            return Tensor(self._meta, self._storage, self._offset)

        target_id = 0 if device_id == -1 else device_id
        src = self.contiguous()
        out = Tensor.create(self.shape, self.dtype, device_type, target_id)
        nbytes = src.nbytes
        if nbytes == 0:
            return out

        kind = MemcpyKind.between(self.device_type.is_host, device_type.is_host)
        dst_region = out._storage.region(0, nbytes)
        src_region = src._storage.region(src._offset, nbytes)
        if kind is MemcpyKind.H2H:
            dst_region.copy_(src_region)
        elif kind is MemcpyKind.D2H:
            get_runtime(self.device_type, self.device_id).memcpy_sync(dst_region, src_region, nbytes, kind)
        else:
            get_runtime(device_type, target_id).memcpy_sync(dst_region, src_region, nbytes, kind)
        logger.debug("to: copied %d bytes %s", nbytes, kind.value)
        return out

    def load(self, src) -> None:
        """
        Overwrite this view's bytes from a host buffer.

        src may be any bytes-like object or a torch tensor; it must hold
        exactly numel() * element_size() bytes.
        """
        if not self.is_contiguous():
            raise ContiguityError(f"load: {self.info()} is not contiguous")
        buf = _as_byte_tensor(src)
        nbytes = self.nbytes
        if buf.numel() != nbytes:
            raise ValidationError(f"load: expected {nbytes} bytes for {self.info()}, got {buf.numel()}")
        if nbytes == 0:
            return
        region = self._storage.region(self._offset, nbytes)
        if self.device_type.is_host:
            region.copy_(buf)
        else:
            kind = MemcpyKind.between(buf.device.type == "cpu", False)
            get_runtime(self.device_type, self.device_id).memcpy_sync(region, buf, nbytes, kind)

    def data(self) -> torch.Tensor:
        """
        A torch tensor aliasing this view's bytes, typed and shaped.

        Only contiguous views can be aliased this way; writes through the
        result land in the Storage.
        """
        if not self.is_contiguous():
            raise ContiguityError(f"data: {self.info()} is not contiguous")
        torch_dtype = self.dtype.torch_dtype
        if self.numel() == 0:
            return torch.empty(self.shape, dtype=torch_dtype, device=self._storage.memory.device)
        return self._storage.region(self._offset, self.nbytes).view(torch_dtype).view(self.shape)

    def raw_bytes(self) -> torch.Tensor:
        """This contiguous view's bytes as an aliasing 1-D uint8 tensor."""
        if not self.is_contiguous():
            raise ContiguityError(f"raw_bytes: {self.info()} is not contiguous")
        if self.numel() == 0:
            return torch.empty(0, dtype=torch.uint8, device=self._storage.memory.device)
        return self._storage.region(self._offset, self.nbytes)

    def to_torch(self) -> torch.Tensor:
        return self.contiguous().data().clone()

    def tolist(self):
        return self.to_torch().tolist()

    # -- inspection -------------------------------------------------------

    def info(self) -> str:
        shape = " ".join(str(s) for s in self.shape)
        strides = " ".join(str(s) for s in self.strides)
        return f"Tensor: shape[ {shape} ] strides[ {strides} ] dtype={self.dtype.name}"

    def debug(self, file=None) -> None:
        """Print info() and the values, one innermost row per line."""
        if not self.device_type.is_host:
            get_runtime(self.device_type, self.device_id).device_synchronize()
        print(self.info(), file=file)
        if self.numel() == 0:
            return
        values = self.to_torch().cpu()
        if self.dtype in (DType.F16, DType.BF16):
            values = to_wide(values)
        if values.dim() == 0:
            print(values.item(), file=file)
            return
        for row in values.reshape(-1, values.shape[-1]).tolist():
            print(" ".join(str(v) for v in row), file=file)

    def __repr__(self) -> str:
        return f"{self.info()} device={self.device_type.name}:{self.device_id}"


def _as_byte_tensor(src) -> torch.Tensor:
    if isinstance(src, torch.Tensor):
        flat = src.detach().contiguous().reshape(-1)
        return flat.view(torch.uint8)
    raw = memoryview(src).cast("B")
    if len(raw) == 0:
        return torch.empty(0, dtype=torch.uint8)
    return torch.frombuffer(bytearray(raw), dtype=torch.uint8)
