import pytest


torch = pytest.importorskip("torch")

from cpu_llm_kernels import DType, dsize
from cpu_llm_kernels.cast import WIDE_CASTS, bits_to_wide, from_wide, wide_cast_for, wide_to_bits
from cpu_llm_kernels.errors import UnsupportedDTypeError


def test_encoding_tags_are_stable():
    assert [DType.BYTE, DType.BOOL, DType.I8, DType.I64, DType.U64] == [1, 2, 3, 6, 10]
    assert [DType.F16, DType.F32, DType.F64, DType.BF16] == [12, 13, 14, 19]


@pytest.mark.parametrize(
    "dtype,size",
    [(DType.BYTE, 1), (DType.BOOL, 1), (DType.I16, 2), (DType.U32, 4), (DType.I64, 8), (DType.F16, 2), (DType.BF16, 2)],
)
def test_element_sizes(dtype, size):
    assert dsize(dtype) == size
    assert dtype.torch_dtype.itemsize == size


@pytest.mark.parametrize("tag", [0, 11, 99, "F8", None])
def test_unrecognized_tags_are_rejected(tag):
    with pytest.raises(UnsupportedDTypeError):
        DType.coerce(tag)


def test_coerce_accepts_names_and_integers():
    assert DType.coerce("bf16") is DType.BF16
    assert DType.coerce(13) is DType.F32


@pytest.mark.parametrize(
    "bits,dtype,value",
    [(0x3C00, DType.F16, 1.0), (0xC000, DType.F16, -2.0), (0x3F80, DType.BF16, 1.0), (0xBF00, DType.BF16, -0.5)],
)
def test_bits_to_wide(bits, dtype, value):
    assert bits_to_wide(bits, dtype) == value


def test_half_infinity_decodes():
    assert bits_to_wide(0x7C00, DType.F16) == float("inf")


def test_wide_to_bits_rounds_to_nearest_even():
    assert wide_to_bits(1.0, DType.F16) == 0x3C00
    assert wide_to_bits(1.0, DType.BF16) == 0x3F80
    # Halfway cases for the 7-bit bf16 mantissa.
    assert wide_to_bits(1.0 + 2**-8, DType.BF16) == 0x3F80
    assert wide_to_bits(1.0 + 3 * 2**-8, DType.BF16) == 0x3F82


def test_bit_helpers_reject_wide_encodings():
    with pytest.raises(UnsupportedDTypeError):
        bits_to_wide(0, DType.F32)


def test_f32_cast_is_identity():
    x = torch.randn(4)
    cast = WIDE_CASTS[DType.F32]
    assert cast.to_wide(x) is x
    assert cast.from_wide(x) is x


def test_half_casts_round_once():
    x = torch.tensor([1.0 + 2**-12, 3.0])
    y = from_wide(x, DType.F16)
    assert y.dtype == torch.float16
    assert WIDE_CASTS[DType.F16].to_wide(y).tolist() == [1.0, 3.0]


def test_wide_cast_for_names_the_operation():
    with pytest.raises(UnsupportedDTypeError, match="rope"):
        wide_cast_for(DType.I32, "rope")
