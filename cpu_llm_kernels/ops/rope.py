from __future__ import annotations

import logging
from typing import Optional

import torch

from cpu_llm_kernels.cast import WIDE_DTYPE, wide_cast_for
from cpu_llm_kernels.config import get_config
from cpu_llm_kernels.dtypes import DType
from cpu_llm_kernels.errors import ShapeMismatchError
from cpu_llm_kernels.ops._contract import (
    check_contiguous,
    check_dtype,
    check_host,
    check_ndim,
    check_same_device,
    check_same_dtype,
    check_shape,
)
from cpu_llm_kernels.tensor import Tensor

logger = logging.getLogger(__name__)


def rope_cache(
    positions: torch.Tensor,
    head_dim: int,
    theta: float,
) -> tuple[torch.Tensor, torch.Tensor]:
    """
    Build RoPE cos/sin tables for the given positions.

    positions: [S] integer position ids, used verbatim
    Returns: (cos, sin) each [S, head_dim/2] float32
    """
    if head_dim % 2 != 0:
        raise ShapeMismatchError(f"rope: head_dim must be even, got {head_dim}")

    half = head_dim // 2
    exponents = torch.arange(half, dtype=WIDE_DTYPE) * 2.0 / head_dim
    inv_freq = torch.pow(torch.tensor(theta, dtype=WIDE_DTYPE), exponents)  # theta^(2i/d)
    angles = positions.to(WIDE_DTYPE).unsqueeze(1) / inv_freq.unsqueeze(0)
    return torch.cos(angles), torch.sin(angles)


def rope(
    out: Tensor,  # [S, H, D]
    inp: Tensor,  # [S, H, D]
    pos_ids: Tensor,  # [S] int64
    theta: Optional[float] = None,
) -> None:
    """
    Rotate each head's (x[i], x[i + D/2]) pairs by pos_ids[s] / theta^(2i/D).

    out may alias inp. theta defaults to KernelConfig.rope_theta.
    """
    op = "rope"
    check_same_device(op, out=out, inp=inp, pos_ids=pos_ids)
    check_contiguous(op, out=out, inp=inp, pos_ids=pos_ids)
    check_ndim(op, "out", out, 3)
    check_ndim(op, "inp", inp, 3)
    check_ndim(op, "pos_ids", pos_ids, 1)

    seq_len, n_heads, head_dim = inp.shape
    check_shape(op, "out", out, inp.shape)
    check_shape(op, "pos_ids", pos_ids, (seq_len,))
    if head_dim % 2 != 0:
        raise ShapeMismatchError(f"{op}: head_dim must be even, got {head_dim}")

    check_same_dtype(op, out=out, inp=inp)
    check_dtype(op, "pos_ids", pos_ids, DType.I64)
    check_host(op, out)
    cast = wide_cast_for(out.dtype, op)

    theta = get_config().rope_theta if theta is None else float(theta)
    if out.numel() == 0:
        return
    logger.debug("%s: dtype=%s seq_len=%d heads=%d head_dim=%d", op, out.dtype.name, seq_len, n_heads, head_dim)

    cos, sin = rope_cache(pos_ids.data(), head_dim, theta)
    cos = cos.unsqueeze(1)  # [S, 1, D/2]
    sin = sin.unsqueeze(1)

    x = cast.to_wide(inp.data())
    half = head_dim // 2
    a, b = x[..., :half], x[..., half:]
    y = torch.cat([a * cos - b * sin, b * cos + a * sin], dim=-1)

    out.data().copy_(cast.from_wide(y))
