from __future__ import annotations

import logging
from typing import Optional

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


def linear(
    out: Tensor,  # [B, O]
    inp: Tensor,  # [B, I]
    weight: Tensor,  # [O, I]
    bias: Optional[Tensor] = None,  # [O]
) -> None:
    """
    out = inp @ weight.T + bias, accumulated in float32.
    """
    op = "linear"
    check_same_device(op, out=out, inp=inp, weight=weight, bias=bias)
    check_contiguous(op, out=out, inp=inp, weight=weight, bias=bias)
    check_ndim(op, "out", out, 2)
    check_ndim(op, "inp", inp, 2)
    check_ndim(op, "weight", weight, 2)

    batch_size, in_features = inp.shape
    out_features = weight.shape[0]
    check_shape(op, "weight", weight, (out_features, in_features))
    check_shape(op, "out", out, (batch_size, out_features))
    if bias is not None:
        check_shape(op, "bias", bias, (out_features,))

    check_same_dtype(op, out=out, inp=inp, weight=weight, bias=bias)
    check_host(op, out)
    cast = wide_cast_for(out.dtype, op)

    if out.numel() == 0:
        return
    logger.debug("%s: dtype=%s [%d, %d] x [%d, %d]^T", op, out.dtype.name, batch_size, in_features, out_features, in_features)

    y = torch.matmul(cast.to_wide(inp.data()), cast.to_wide(weight.data()).t())
    if bias is not None:
        y = y + cast.to_wide(bias.data())
    out.data().copy_(cast.from_wide(y))
