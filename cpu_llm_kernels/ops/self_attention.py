from __future__ import annotations

import logging
import math
from typing import Optional

import torch

from cpu_llm_kernels.cast import wide_cast_for
from cpu_llm_kernels.errors import ShapeMismatchError
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


def causal_mask(seq_len: int, total_len: int) -> torch.Tensor:
    """
    Visibility of key position t from query position p, as a [seq_len, total_len] bool tensor.

    The last seq_len keys are the query window itself, so query p sees keys
    [0, p + total_len - seq_len].
    """
    kv_offset = total_len - seq_len
    pos = torch.arange(seq_len, dtype=torch.int64).unsqueeze(1) + kv_offset
    keys = torch.arange(total_len, dtype=torch.int64).unsqueeze(0)
    return keys <= pos


def masked_softmax(scores: torch.Tensor, visible: torch.Tensor) -> torch.Tensor:
    """
    Softmax over the last dim, restricted to visible positions.

    The row maximum is subtracted before exponentiating. Hidden positions get
    weight 0, and a row whose exponentials sum to 0 gets all-zero weights.
    """
    scores = scores.masked_fill(~visible, float("-inf"))
    row_max = scores.amax(dim=-1, keepdim=True)
    row_max = torch.where(torch.isfinite(row_max), row_max, torch.zeros_like(row_max))
    weights = torch.exp(scores - row_max)
    total = weights.sum(dim=-1, keepdim=True)
    inv_total = torch.where(total > 0, 1.0 / total, torch.zeros_like(total))
    return weights * inv_total


def self_attention(
    attn_val: Tensor,  # [S, Hq, Dv]
    q: Tensor,  # [S, Hq, D]
    k: Tensor,  # [T, Hkv, D]
    v: Tensor,  # [T, Hkv, Dv]
    scale: Optional[float] = None,
) -> None:
    """
    Causal grouped-query scaled dot-product attention, written into attn_val.

    Query head h reads key/value head h // (Hq / Hkv). Keys are the
    concatenation of a cached prefix and the current window, so query
    position p attends to keys [0, p + T - S]. scale defaults to 1/sqrt(D).
    All arithmetic runs in float32 whatever the operands' encoding.
    """
    op = "self_attention"
    check_same_device(op, attn_val=attn_val, q=q, k=k, v=v)
    check_contiguous(op, attn_val=attn_val, q=q, k=k, v=v)
    for name, t in (("attn_val", attn_val), ("q", q), ("k", k), ("v", v)):
        check_ndim(op, name, t, 3)

    seq_len, n_q_head, head_dim = q.shape
    total_len, n_kv_head, k_dim = k.shape
    v_dim = v.shape[2]

    check_shape(op, "attn_val", attn_val, (seq_len, n_q_head, v_dim))
    check_shape(op, "v", v, (total_len, n_kv_head, v_dim))
    if k_dim != head_dim:
        raise ShapeMismatchError(f"{op}: 'q' and 'k' must share the last dimension, got {head_dim} and {k_dim}")
    if head_dim == 0:
        raise ShapeMismatchError(f"{op}: head_dim must be positive")
    if n_kv_head == 0 or n_q_head % n_kv_head != 0:
        raise ShapeMismatchError(f"{op}: n_q_head ({n_q_head}) must be a multiple of n_kv_head ({n_kv_head})")
    if total_len < seq_len:
        raise ShapeMismatchError(f"{op}: total_len ({total_len}) must be >= seq_len ({seq_len})")

    check_same_dtype(op, attn_val=attn_val, q=q, k=k, v=v)
    check_host(op, attn_val)
    cast = wide_cast_for(attn_val.dtype, op)

    s = 1.0 / math.sqrt(head_dim) if scale is None else float(scale)
    if attn_val.numel() == 0:
        return

    group = n_q_head // n_kv_head
    logger.debug(
        "%s: dtype=%s seq_len=%d total_len=%d heads=%d/%d",
        op, attn_val.dtype.name, seq_len, total_len, n_q_head, n_kv_head,
    )

    qf = cast.to_wide(q.data())
    kf = cast.to_wide(k.data()).repeat_interleave(group, dim=1)  # [T, Hq, D]
    vf = cast.to_wide(v.data()).repeat_interleave(group, dim=1)  # [T, Hq, Dv]

    scores = torch.einsum("shd,thd->hst", qf, kf) * s  # [Hq, S, T]
    probs = masked_softmax(scores, causal_mask(seq_len, total_len))
    out = torch.einsum("hst,thd->shd", probs, vf)

    attn_val.data().copy_(cast.from_wide(out))
