from __future__ import annotations

import logging

import torch

from cpu_llm_kernels.cast import WIDE_CASTS, to_wide
from cpu_llm_kernels.dtypes import DType
from cpu_llm_kernels.errors import ShapeMismatchError, UnsupportedDTypeError, ValidationError
from cpu_llm_kernels.ops._contract import (
    check_contiguous,
    check_dtype,
    check_host,
    check_same_device,
    check_same_dtype,
)
from cpu_llm_kernels.tensor import Tensor

logger = logging.getLogger(__name__)

# Integers are compared exactly in int64 rather than through float32.
_EXACT_DTYPES = (DType.I8, DType.I16, DType.I32, DType.I64, DType.U8)


def argmax(max_idx: Tensor, max_val: Tensor, vals: Tensor) -> None:
    """
    Write the index (int64) and value of the largest element of vals.

    The first occurrence wins on ties. NaN never compares greater, so NaN
    entries are skipped; if every entry is NaN the result is index 0.
    vals is read in row-major order whatever its rank; it must not be empty.
    """
    op = "argmax"
    check_same_device(op, max_idx=max_idx, max_val=max_val, vals=vals)
    check_contiguous(op, max_idx=max_idx, max_val=max_val, vals=vals)
    if vals.numel() == 0:
        raise ValidationError(f"{op}: 'vals' is empty")
    for name, t in (("max_idx", max_idx), ("max_val", max_val)):
        if t.numel() != 1:
            raise ShapeMismatchError(f"{op}: '{name}' must hold exactly one element, got shape {t.shape}")

    check_dtype(op, "max_idx", max_idx, DType.I64)
    check_same_dtype(op, max_val=max_val, vals=vals)
    check_host(op, vals)

    data = vals.data().reshape(-1)
    if vals.dtype in WIDE_CASTS or vals.dtype is DType.F64:
        keys = to_wide(data) if vals.dtype is not DType.F64 else data
        keys = keys.masked_fill(torch.isnan(keys), float("-inf"))
    elif vals.dtype in _EXACT_DTYPES:
        keys = data.to(torch.int64)
    else:
        raise UnsupportedDTypeError(f"{op}: unsupported data type {vals.dtype.name}")

    index = int(torch.argmax(keys).item())
    logger.debug("%s: dtype=%s numel=%d -> %d", op, vals.dtype.name, vals.numel(), index)
    max_idx.data().reshape(-1)[0] = index
    max_val.data().reshape(-1)[0] = data[index]
