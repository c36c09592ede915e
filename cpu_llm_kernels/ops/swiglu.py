from __future__ import annotations

import logging

import torch

from cpu_llm_kernels.cast import wide_cast_for
from cpu_llm_kernels.ops._contract import (
    check_contiguous,
    check_host,
    check_ndim,
    check_same_device,
    check_same_dtype,
    check_shape,
)
from cpu_llm_kernels.tensor import Tensor

logger = logging.getLogger(__name__)


def swiglu(out: Tensor, gate: Tensor, up: Tensor) -> None:
    """out = up * gate / (1 + exp(-gate)), elementwise over [rows, cols]."""
    op = "swiglu"
    check_same_device(op, out=out, gate=gate, up=up)
    check_contiguous(op, out=out, gate=gate, up=up)
    check_ndim(op, "out", out, 2)
    check_ndim(op, "gate", gate, 2)
    check_ndim(op, "up", up, 2)
    check_shape(op, "gate", gate, out.shape)
    check_shape(op, "up", up, out.shape)

    check_same_dtype(op, out=out, gate=gate, up=up)
    check_host(op, out)
    cast = wide_cast_for(out.dtype, op)

    if out.numel() == 0:
        return
    logger.debug("%s: dtype=%s shape=%s", op, out.dtype.name, out.shape)

    g = cast.to_wide(gate.data())
    u = cast.to_wide(up.data())
    out.data().copy_(cast.from_wide(u * (g / (1.0 + torch.exp(-g)))))
