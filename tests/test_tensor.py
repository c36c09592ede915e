import itertools
import math
import struct

import pytest


torch = pytest.importorskip("torch")

from cpu_llm_kernels import DeviceType, DType, Tensor
from cpu_llm_kernels.errors import (
    ContiguityError,
    IndexOutOfRangeError,
    ShapeMismatchError,
    UnsupportedDeviceError,
    ValidationError,
)


def _arange(shape, dtype=torch.float32):
    ref = torch.arange(math.prod(shape)).to(dtype).reshape(shape)
    return Tensor.from_torch(ref), ref


def test_create_uses_row_major_strides():
    t = Tensor.create((2, 3, 4), DType.F32)
    assert t.shape == (2, 3, 4)
    assert t.strides == (12, 4, 1)
    assert t.numel() == 24
    assert t.storage.size == 24 * 4
    assert t.offset == 0
    assert t.is_contiguous()
    assert t.device_type is DeviceType.CPU


def test_zero_dim_tensor_has_one_element():
    t = Tensor.create((), DType.I64)
    assert t.ndim == 0
    assert t.numel() == 1
    assert t.nbytes == 8
    assert t.is_contiguous()


def test_create_rejects_negative_extent():
    with pytest.raises(ShapeMismatchError):
        Tensor.create((2, -1), DType.F32)


def test_create_rejects_unknown_device():
    with pytest.raises(UnsupportedDeviceError):
        Tensor.create((2,), DType.F32, device_type=7)


def test_create_rejects_overflowing_size():
    with pytest.raises(ValidationError):
        Tensor.create((2**40, 2**40), DType.F32)


def test_host_views_keep_their_device_index():
    t = Tensor.create((2,), DType.F32, DeviceType.CPU, 1)
    assert t.device_id == 1
    assert t.storage.device_id == 1
    assert t.to(DeviceType.CPU, 1).storage is t.storage


@pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
def test_contiguous_of_permute_matches_strided_gather(order):
    v, ref = _arange((2, 3, 4))
    p = v.permute(order)
    assert p.storage is v.storage
    assert p.shape == tuple(ref.shape[i] for i in order)

    c = p.contiguous()
    assert c.is_contiguous()
    torch.testing.assert_close(c.to_torch(), ref.permute(order).contiguous(), rtol=0, atol=0)

    # Element-by-element walk through the permuted strides.
    flat = ref.reshape(-1)
    gathered = c.to_torch().reshape(-1)
    for i in range(p.numel()):
        assert gathered[i] == flat[p.element_offset(i)]


def test_contiguous_of_contiguous_is_alias():
    v, _ = _arange((3, 4))
    c = v.contiguous()
    assert c.storage is v.storage
    assert c.offset == v.offset


def test_permute_keeps_contiguity_rederived():
    v, _ = _arange((3, 4))
    p = v.permute((1, 0))
    assert not p.is_contiguous()
    assert p.permute((1, 0)).is_contiguous()


@pytest.mark.parametrize("order", [(0, 1), (0, 1, 3), (0, 0, 1), (-1, 0, 1)])
def test_permute_rejects_bad_order(order):
    v, _ = _arange((2, 3, 4))
    with pytest.raises(IndexOutOfRangeError):
        v.permute(order)


def test_permute_error_is_an_index_error():
    v, _ = _arange((2, 3))
    with pytest.raises(IndexError):
        v.permute((1,))


def test_view_round_trip_shares_storage():
    v, ref = _arange((2, 3, 4))
    flat = v.view((6, 4))
    assert flat.storage is v.storage
    assert flat.strides == (4, 1)
    back = flat.view((2, 3, 4))
    assert back.shape == (2, 3, 4)
    torch.testing.assert_close(back.to_torch(), ref, rtol=0, atol=0)


def test_view_requires_contiguous_source():
    v, _ = _arange((2, 3, 4))
    with pytest.raises(ContiguityError):
        v.permute((1, 0, 2)).view((24,))


def test_view_requires_same_element_count():
    v, _ = _arange((2, 3, 4))
    with pytest.raises(ShapeMismatchError):
        v.view((5, 5))


def test_reshape_materializes_non_contiguous_source():
    v, ref = _arange((2, 3, 4))
    p = v.permute((2, 0, 1))
    r = p.reshape((4, 6))
    assert r.storage is not v.storage
    torch.testing.assert_close(r.to_torch(), ref.permute(2, 0, 1).reshape(4, 6), rtol=0, atol=0)

    same = v.reshape((24,))
    assert same.storage is v.storage


def test_slice_advances_byte_offset():
    v, ref = _arange((2, 3, 4))
    s = v.slice(1, 1, 3)
    assert s.shape == (2, 2, 4)
    assert s.strides == v.strides
    assert s.offset == 1 * 4 * 4
    assert s.storage is v.storage
    torch.testing.assert_close(s.to_torch(), ref[:, 1:3, :], rtol=0, atol=0)


@pytest.mark.parametrize("dim,a,b,x,y", [(0, 1, 5, 1, 3), (1, 0, 6, 2, 2), (1, 2, 6, 0, 4), (0, 0, 6, 0, 6)])
def test_slice_composes(dim, a, b, x, y):
    v, _ = _arange((6, 6))
    nested = v.slice(dim, a, b).slice(dim, x, y)
    direct = v.slice(dim, a + x, a + y)
    assert nested.shape == direct.shape
    assert nested.strides == direct.strides
    assert nested.offset == direct.offset
    torch.testing.assert_close(nested.to_torch(), direct.to_torch(), rtol=0, atol=0)


@pytest.mark.parametrize("dim,start,end", [(3, 0, 1), (1, 2, 1), (1, 0, 4), (0, -1, 1)])
def test_slice_rejects_bad_bounds(dim, start, end):
    v, _ = _arange((2, 3, 4))
    with pytest.raises(IndexOutOfRangeError):
        v.slice(dim, start, end)


def test_empty_slice_touches_nothing():
    v, _ = _arange((2, 3))
    s = v.slice(0, 2, 2)
    assert s.numel() == 0
    assert s.to_torch().shape == (0, 3)


def test_permute_slice_composition_gathers_correctly():
    v, ref = _arange((4, 5, 6))
    s = v.permute((2, 0, 1)).slice(0, 1, 4).slice(2, 2, 5)
    expected = ref.permute(2, 0, 1)[1:4, :, 2:5]
    torch.testing.assert_close(s.contiguous().to_torch(), expected, rtol=0, atol=0)


def test_negative_strides_through_as_strided():
    v, ref = _arange((6,))
    rev = v.as_strided((6,), (-1,), storage_offset=5)
    assert not rev.is_contiguous()
    torch.testing.assert_close(rev.contiguous().to_torch(), ref.flip(0), rtol=0, atol=0)


@pytest.mark.parametrize("shape,strides,offset", [((7,), (1,), 0), ((2,), (-1,), 0), ((3,), (3,), 0), ((1,), (1,), 6)])
def test_views_escaping_storage_are_rejected(shape, strides, offset):
    v, _ = _arange((6,))
    with pytest.raises(IndexOutOfRangeError):
        v.as_strided(shape, strides, storage_offset=offset)


def test_element_offset_rejects_out_of_range_index():
    v, _ = _arange((2, 3))
    with pytest.raises(IndexOutOfRangeError):
        v.element_offset(6)


def test_writes_through_one_view_are_visible_in_another():
    v, _ = _arange((3, 4))
    v.slice(0, 1, 2).data().fill_(-1.0)
    values = v.to_torch()
    assert torch.all(values[1] == -1.0)
    assert values[0, 0] == 0.0


def test_load_from_bytes_and_tensor():
    t = Tensor.create((2, 2), DType.F32)
    src = torch.tensor([[1.0, 2.0], [3.0, 4.0]])
    t.load(struct.pack("=4f", 1.0, 2.0, 3.0, 4.0))
    torch.testing.assert_close(t.to_torch(), src, rtol=0, atol=0)

    t.load(src * 2)
    torch.testing.assert_close(t.to_torch(), src * 2, rtol=0, atol=0)


def test_load_rejects_wrong_byte_count():
    t = Tensor.create((2, 2), DType.F32)
    with pytest.raises(ValidationError):
        t.load(b"\x00" * 15)


def test_load_rejects_non_contiguous_view():
    v, _ = _arange((2, 3))
    with pytest.raises(ContiguityError):
        v.permute((1, 0)).load(b"\x00" * 24)


def test_to_same_device_is_alias():
    v, _ = _arange((2, 3))
    assert v.to(DeviceType.CPU).storage is v.storage
    assert v.to(DeviceType.CPU, 0).storage is v.storage


@pytest.mark.parametrize("dtype", [torch.float16, torch.bfloat16, torch.int8, torch.int64, torch.bool])
def test_from_torch_round_trips_every_encoding(dtype):
    ref = (torch.arange(12) % 5).to(dtype).reshape(3, 4)
    t = Tensor.from_torch(ref)
    assert t.dtype is DType.from_torch(dtype)
    got = t.permute((1, 0)).contiguous().to_torch()
    assert torch.equal(got, ref.t().contiguous())


def test_info_and_debug(capsys):
    v, _ = _arange((2, 3))
    assert v.info() == "Tensor: shape[ 2 3 ] strides[ 3 1 ] dtype=F32"

    v.permute((1, 0)).debug()
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[0] == "Tensor: shape[ 3 2 ] strides[ 1 3 ] dtype=F32"
    assert lines[1:] == ["0.0 3.0", "1.0 4.0", "2.0 5.0"]


def test_debug_prints_half_values_as_floats(capsys):
    t = Tensor.from_torch(torch.tensor([0.5, -2.0], dtype=torch.bfloat16))
    t.debug()
    assert capsys.readouterr().out.strip().splitlines()[1] == "0.5 -2.0"


def test_debug_prints_double_values_unrounded(capsys):
    t = Tensor.from_torch(torch.tensor([1.0000000001], dtype=torch.float64))
    t.debug()
    assert capsys.readouterr().out.strip().splitlines()[1] == "1.0000000001"
