from __future__ import annotations

import logging
from typing import Optional

import torch

from cpu_llm_kernels.cast import wide_cast_for
from cpu_llm_kernels.config import get_config
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


def rms_norm(out: Tensor, inp: Tensor, weight: Tensor, eps: Optional[float] = None) -> None:
    """
    out[r, i] = weight[i] * inp[r, i] / sqrt(mean(inp[r] ** 2) + eps)

    inp/out: [rows, hidden], weight: [hidden]. eps defaults to KernelConfig.rms_eps.
    """
    op = "rms_norm"
    check_same_device(op, out=out, inp=inp, weight=weight)
    check_contiguous(op, out=out, inp=inp, weight=weight)
    check_ndim(op, "out", out, 2)
    check_ndim(op, "inp", inp, 2)
    check_ndim(op, "weight", weight, 1)

    rows, hidden = inp.shape
    check_shape(op, "out", out, (rows, hidden))
    check_shape(op, "weight", weight, (hidden,))

    check_same_dtype(op, out=out, inp=inp, weight=weight)
    check_host(op, out)
    cast = wide_cast_for(out.dtype, op)

    eps = get_config().rms_eps if eps is None else float(eps)
    if out.numel() == 0:
        return
    logger.debug("%s: dtype=%s rows=%d hidden=%d eps=%g", op, out.dtype.name, rows, hidden, eps)

    x = cast.to_wide(inp.data())
    w = cast.to_wide(weight.data())
    inv_rms = torch.rsqrt(x.pow(2).mean(dim=-1, keepdim=True) + eps)
    out.data().copy_(cast.from_wide(w * x * inv_rms))
