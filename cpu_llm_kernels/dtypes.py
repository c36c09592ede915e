from __future__ import annotations

import enum

import torch

from cpu_llm_kernels.errors import UnsupportedDTypeError


class DType(enum.IntEnum):
    """
    Element-encoding tags.

    The integer values are part of the external interface and must not be
    renumbered. Gaps (0, 11, 15-18) are tags this package does not handle.
    """

    BYTE = 1
    BOOL = 2
    I8 = 3
    I16 = 4
    I32 = 5
    I64 = 6
    U8 = 7
    U16 = 8
    U32 = 9
    U64 = 10
    F16 = 12
    F32 = 13
    F64 = 14
    BF16 = 19

    @property
    def size(self) -> int:
        return _SIZES[self]

    @property
    def torch_dtype(self) -> torch.dtype:
        return _TORCH_DTYPES[self]

    @property
    def is_floating(self) -> bool:
        return self in (DType.F16, DType.F32, DType.F64, DType.BF16)

    @classmethod
    def from_torch(cls, dtype: torch.dtype) -> "DType":
        try:
            return _FROM_TORCH[dtype]
        except KeyError:
            raise UnsupportedDTypeError(f"no element encoding for torch dtype {dtype}") from None

    @classmethod
    def coerce(cls, value) -> "DType":
        """Accept a DType, its integer tag, or its name."""
        if isinstance(value, DType):
            return value
        try:
            if isinstance(value, str):
                return cls[value.upper()]
            return cls(int(value))
        except (KeyError, ValueError, TypeError):
            raise UnsupportedDTypeError(f"unrecognized element-encoding tag {value!r}") from None


_SIZES = {
    DType.BYTE: 1,
    DType.BOOL: 1,
    DType.I8: 1,
    DType.I16: 2,
    DType.I32: 4,
    DType.I64: 8,
    DType.U8: 1,
    DType.U16: 2,
    DType.U32: 4,
    DType.U64: 8,
    DType.F16: 2,
    DType.F32: 4,
    DType.F64: 8,
    DType.BF16: 2,
}

_TORCH_DTYPES = {
    DType.BYTE: torch.uint8,
    DType.BOOL: torch.bool,
    DType.I8: torch.int8,
    DType.I16: torch.int16,
    DType.I32: torch.int32,
    DType.I64: torch.int64,
    DType.U8: torch.uint8,
    DType.U16: torch.uint16,
    DType.U32: torch.uint32,
    DType.U64: torch.uint64,
    DType.F16: torch.float16,
    DType.F32: torch.float32,
    DType.F64: torch.float64,
    DType.BF16: torch.bfloat16,
}

# torch.uint8 maps back to U8; BYTE is only reachable by tag.
_FROM_TORCH = {td: dt for dt, td in _TORCH_DTYPES.items() if dt is not DType.BYTE}


def dsize(dtype: DType) -> int:
    return DType.coerce(dtype).size
