from __future__ import annotations

import logging

from cpu_llm_kernels.dtypes import DType
from cpu_llm_kernels.errors import ShapeMismatchError
from cpu_llm_kernels.ops._contract import (
    check_contiguous,
    check_dtype,
    check_host,
    check_ndim,
    check_same_device,
    check_same_dtype,
)
from cpu_llm_kernels.tensor import Tensor

logger = logging.getLogger(__name__)


def embedding(
    out: Tensor,  # [N, E]
    index: Tensor,  # [N] int64
    weight: Tensor,  # [V, E]
) -> None:
    """
    out[b] = weight[index[b]].

    Indices outside [0, V) are not an error: their output rows are zero.
    Rows are copied bit-for-bit, so every encoding is accepted.
    """
    op = "embedding"
    check_same_device(op, out=out, index=index, weight=weight)
    check_contiguous(op, out=out, index=index, weight=weight)
    check_ndim(op, "index", index, 1)
    check_ndim(op, "weight", weight, 2)
    check_ndim(op, "out", out, 2)

    batch_size, embed_dim = out.shape
    vocab_size, weight_dim = weight.shape
    if batch_size != index.numel():
        raise ShapeMismatchError(f"{op}: 'out' has {batch_size} rows, 'index' has {index.numel()} entries")
    if embed_dim != weight_dim:
        raise ShapeMismatchError(f"{op}: 'out' row size {embed_dim} does not match 'weight' row size {weight_dim}")

    check_same_dtype(op, out=out, weight=weight)
    check_dtype(op, "index", index, DType.I64)
    check_host(op, out)

    if out.numel() == 0:
        return

    idx = index.data()
    valid = (idx >= 0) & (idx < vocab_size)
    dropped = int((~valid).sum().item())
    if dropped:
        logger.debug("%s: %d of %d indices out of [0, %d), zero-filled", op, dropped, batch_size, vocab_size)

    row_bytes = embed_dim * out.element_size()
    dst = out.raw_bytes().view(batch_size, row_bytes)
    src = weight.raw_bytes().view(vocab_size, row_bytes)
    dst.zero_()
    dst[valid] = src[idx[valid]]
