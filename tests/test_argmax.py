import pytest


torch = pytest.importorskip("torch")

from cpu_llm_kernels import DType, Tensor
from cpu_llm_kernels.errors import DTypeMismatchError, ShapeMismatchError, UnsupportedDTypeError, ValidationError
from cpu_llm_kernels.ops import argmax


def _run(vals):
    max_idx = Tensor.create((1,), DType.I64)
    max_val = Tensor.create((1,), DType.from_torch(vals.dtype))
    argmax(max_idx, max_val, Tensor.from_torch(vals))
    return max_idx.to_torch().item(), max_val.to_torch()[0]


@pytest.mark.parametrize("dtype", [torch.float32, torch.float16, torch.bfloat16, torch.float64, torch.int64, torch.uint8])
def test_first_maximum_wins(dtype):
    idx, val = _run(torch.tensor([3, 7, 2, 7]).to(dtype))
    assert idx == 1
    assert val.item() == 7


def test_reads_higher_rank_in_row_major_order():
    vals = torch.tensor([[0.5, -1.0, 4.0], [4.0, 2.0, 3.0]])
    idx, val = _run(vals)
    assert idx == 2
    assert val.item() == 4.0


def test_nan_entries_are_skipped():
    idx, val = _run(torch.tensor([1.0, float("nan"), 5.0]))
    assert idx == 2
    assert val.item() == 5.0


def test_all_nan_input_returns_first_index():
    idx, val = _run(torch.tensor([float("nan"), float("nan")]))
    assert idx == 0
    assert torch.isnan(val)


def test_large_int64_values_compare_exactly():
    big = 2**53
    idx, _ = _run(torch.tensor([big, big + 1, big], dtype=torch.int64))
    assert idx == 1


def test_rejects_empty_input():
    with pytest.raises(ValidationError):
        argmax(Tensor.create((1,), DType.I64), Tensor.create((1,), DType.F32), Tensor.create((0,), DType.F32))


def test_rejects_wide_index_output():
    with pytest.raises(ShapeMismatchError):
        argmax(Tensor.create((2,), DType.I64), Tensor.create((1,), DType.F32), Tensor.create((3,), DType.F32))


def test_rejects_non_int64_index_output():
    with pytest.raises(DTypeMismatchError):
        argmax(Tensor.create((1,), DType.I32), Tensor.create((1,), DType.F32), Tensor.create((3,), DType.F32))


def test_rejects_unsupported_encoding():
    with pytest.raises(UnsupportedDTypeError):
        argmax(Tensor.create((1,), DType.I64), Tensor.create((1,), DType.BOOL), Tensor.create((3,), DType.BOOL))
