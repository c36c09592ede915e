"""
Checks every kernel runs, in this order, before touching memory:

  1. all operands on the same device
  2. all operands contiguous
  3. rank / shape rules of the kernel
  4. dtype agreement
  5. host device
  6. supported encoding (cast.wide_cast_for)

Operands are passed as keyword arguments so messages can name them.
"""
from __future__ import annotations

from typing import Optional, Sequence

from cpu_llm_kernels.dtypes import DType
from cpu_llm_kernels.errors import (
    ContiguityError,
    DeviceMismatchError,
    DTypeMismatchError,
    ShapeMismatchError,
    UnsupportedDeviceError,
)
from cpu_llm_kernels.tensor import Tensor


def _present(operands: dict) -> dict:
    return {name: t for name, t in operands.items() if t is not None}


def check_same_device(op: str, **operands: Optional[Tensor]) -> None:
    operands = _present(operands)
    (first_name, first), *rest = operands.items()
    for name, t in rest:
        if t.device_type != first.device_type or t.device_id != first.device_id:
            raise DeviceMismatchError(
                f"{op}: '{name}' is on {t.device_type.name}:{t.device_id}, "
                f"expected {first.device_type.name}:{first.device_id} like '{first_name}'"
            )


def check_contiguous(op: str, **operands: Optional[Tensor]) -> None:
    for name, t in _present(operands).items():
        if not t.is_contiguous():
            raise ContiguityError(f"{op}: '{name}' must be contiguous, got {t.info()}")


def check_ndim(op: str, name: str, t: Tensor, ndim: int) -> None:
    if t.ndim != ndim:
        raise ShapeMismatchError(f"{op}: '{name}' must be {ndim}-D, got shape {t.shape}")


def check_shape(op: str, name: str, t: Tensor, expected: Sequence[int]) -> None:
    expected = tuple(expected)
    if t.shape != expected:
        raise ShapeMismatchError(f"{op}: '{name}' must have shape {expected}, got {t.shape}")


def check_same_dtype(op: str, **operands: Optional[Tensor]) -> None:
    operands = _present(operands)
    (first_name, first), *rest = operands.items()
    for name, t in rest:
        if t.dtype != first.dtype:
            raise DTypeMismatchError(
                f"{op}: '{name}' has dtype {t.dtype.name}, expected {first.dtype.name} like '{first_name}'"
            )


def check_dtype(op: str, name: str, t: Tensor, dtype: DType) -> None:
    if t.dtype != dtype:
        raise DTypeMismatchError(f"{op}: '{name}' must be {dtype.name}, got {t.dtype.name}")


def check_host(op: str, t: Tensor) -> None:
    if not t.device_type.is_host:
        raise UnsupportedDeviceError(f"{op}: only CPU tensors are supported, got {t.device_type.name}")
