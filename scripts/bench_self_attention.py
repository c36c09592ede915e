import argparse
import math
import time

import torch

from cpu_llm_kernels import DType, Tensor, configure_logging
from cpu_llm_kernels.ops import rope, self_attention


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--dtype", default="F32", choices=["F32", "F16", "BF16"])
    ap.add_argument("--prompt-len", type=int, default=128)
    ap.add_argument("--steps", type=int, default=64)
    ap.add_argument("--num-q-heads", type=int, default=32)
    ap.add_argument("--num-kv-heads", type=int, default=8)
    ap.add_argument("--head-dim", type=int, default=128)
    ap.add_argument("--log-level", default=None)
    args = ap.parse_args()

    configure_logging(args.log_level)
    dtype = DType.coerce(args.dtype)
    torch_dtype = dtype.torch_dtype
    max_len = args.prompt_len + args.steps + 5
    hq, hkv, d = args.num_q_heads, args.num_kv_heads, args.head_dim

    # KV cache laid out [max_len, Hkv, D]; the visible prefix is a slice along dim 0.
    k_cache = Tensor.from_torch(torch.randn(max_len, hkv, d).to(torch_dtype))
    v_cache = Tensor.from_torch(torch.randn(max_len, hkv, d).to(torch_dtype))
    q = Tensor.from_torch(torch.randn(1, hq, d).to(torch_dtype))
    attn_val = Tensor.create((1, hq, d), dtype)
    scale = 1.0 / math.sqrt(d)

    def step(pos: int) -> None:
        pos_ids = Tensor.from_torch(torch.tensor([pos], dtype=torch.int64))
        k_new = k_cache.slice(0, pos, pos + 1)
        rope(q, q, pos_ids)
        rope(k_new, k_new, pos_ids)
        total = pos + 1
        self_attention(attn_val, q, k_cache.slice(0, 0, total), v_cache.slice(0, 0, total), scale)

    # Warmup
    pos = args.prompt_len
    for _ in range(5):
        step(pos)
        pos += 1

    latencies = []
    for _ in range(args.steps):
        t0 = time.perf_counter()
        step(pos)
        t1 = time.perf_counter()
        latencies.append((t1 - t0) * 1000.0)
        pos += 1

    latencies.sort()
    p50 = latencies[int(0.50 * len(latencies))]
    p95 = latencies[int(0.95 * len(latencies))]
    total_s = sum(latencies) / 1000.0
    toks_per_s = args.steps / total_s if total_s > 0 else float("inf")

    print(f"steps={args.steps} prompt_len={args.prompt_len} heads={hq}/{hkv} head_dim={d} dtype={dtype.name}")
    print(f"latency_ms p50={p50:.3f} p95={p95:.3f}")
    print(f"throughput tokens/s={toks_per_s:.1f}")


if __name__ == "__main__":
    main()
