"""
Conversions between the compact storage encodings and the wide float32
encoding that every kernel accumulates in.

Kernels cast once when reading operands and once when writing the output,
so each output element is rounded exactly once per kernel call.
"""
from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Callable, Dict

import torch

from cpu_llm_kernels.dtypes import DType
from cpu_llm_kernels.errors import UnsupportedDTypeError

WIDE_DTYPE = torch.float32

_HALF_ENCODINGS = (DType.F16, DType.BF16)


def to_wide(x: torch.Tensor) -> torch.Tensor:
    return x.to(WIDE_DTYPE)


def from_wide(x: torch.Tensor, dtype: DType) -> torch.Tensor:
    # torch rounds to nearest, ties to even, for both half layouts.
    return x.to(DType.coerce(dtype).torch_dtype)


@dataclass(frozen=True)
class WideCast:
    """The load/store pair a kernel is instantiated with for one encoding."""

    dtype: DType
    to_wide: Callable[[torch.Tensor], torch.Tensor]
    from_wide: Callable[[torch.Tensor], torch.Tensor]


def _make_cast(dtype: DType) -> WideCast:
    if dtype is DType.F32:
        return WideCast(dtype, lambda x: x, lambda x: x)
    return WideCast(dtype, to_wide, lambda x: from_wide(x, dtype))


WIDE_CASTS: Dict[DType, WideCast] = {dt: _make_cast(dt) for dt in (DType.F32, DType.F16, DType.BF16)}


def wide_cast_for(dtype: DType, op: str) -> WideCast:
    try:
        return WIDE_CASTS[dtype]
    except KeyError:
        raise UnsupportedDTypeError(f"{op}: unsupported data type {DType(dtype).name}") from None


def bits_to_wide(bits: int, dtype: DType) -> float:
    """
    Decode the raw 16-bit pattern of an F16 or BF16 value.

    e.g. bits_to_wide(0x3C00, DType.F16) == 1.0
    """
    dtype = DType.coerce(dtype)
    if dtype not in _HALF_ENCODINGS:
        raise UnsupportedDTypeError(f"bits_to_wide: {dtype.name} is not a 16-bit float encoding")
    raw = torch.tensor(list((bits & 0xFFFF).to_bytes(2, sys.byteorder)), dtype=torch.uint8)
    return float(raw.view(dtype.torch_dtype).to(WIDE_DTYPE).item())


def wide_to_bits(value: float, dtype: DType) -> int:
    """Round a float32 value into the raw 16-bit pattern of F16 or BF16."""
    dtype = DType.coerce(dtype)
    if dtype not in _HALF_ENCODINGS:
        raise UnsupportedDTypeError(f"wide_to_bits: {dtype.name} is not a 16-bit float encoding")
    compact = torch.tensor([value], dtype=WIDE_DTYPE).to(dtype.torch_dtype)
    return int.from_bytes(bytes(compact.view(torch.uint8).tolist()), sys.byteorder)
