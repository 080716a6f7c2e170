import struct

import pytest

from bitform.bitstream import BitStream
from bitform.exceptions import EndOfStream, InvalidArgument, InvalidState
from bitform.meta import Endianess


def test_read_bits_endianess():
    assert BitStream(b'\x42\x00').read_bits(16) == 16896
    assert BitStream(b'\x42\x00').read_bits(16, Endianess.LITTLE_ENDIAN) == 66
    assert BitStream(b'\x42\x00', endianess=Endianess.LITTLE_ENDIAN).read_bits(16) == 66


def test_read_bits_inside_a_byte():
    """The bits of a byte are consumed from the least significant one"""
    stream = BitStream(b'\xb5')

    assert stream.read_bits(3) == 0b101
    assert stream.read_bits(5) == 0b10110
    assert stream.at_end()


def test_write_mixed_widths(writer):
    writer.write_bits(0b101, 3)
    writer.write_bits(0b10110, 5)
    writer.write_bits(0xbeef, 16)
    writer.write_bits(1, 1)
    writer.flush()

    assert writer.source.getvalue() == b'\xb5\xbe\xef\x01'


def test_mixed_widths_round_trip(writer):
    fields = [
        (0b011, 3, None),
        (0xbeef, 16, None),  # crosses the byte boundary
        (0b1, 1, None),
        (0x1234, 16, Endianess.LITTLE_ENDIAN),
        (0b10110, 5, None),
        (0xfedcba9876543210, 64, None),
        ((1 << 99) | 0xcafe, 100, None),  # wider than a machine word
        (0x0123456789abcdef, 64, Endianess.LITTLE_ENDIAN),
    ]

    for value, length, endianess in fields:
        writer.write_bits(value, length, endianess)
    writer.flush()

    data = writer.source.getvalue()
    assert len(data) == (sum(_[1] for _ in fields) + 7) // 8

    reader = BitStream(data)
    for value, length, endianess in fields:
        assert reader.read_bits(length, endianess) == value

    assert reader.at_end() is False  # the padding bits of the last byte
    reader.align()
    assert reader.at_end()


def test_crossing_boundary_layout(writer):
    writer.write_bits(0b011, 3)
    writer.write_bits(0xbeef, 16)
    writer.flush()

    assert writer.source.getvalue() == b'\xbb\xdd\x07'


def test_align_discards_the_unread_bits():
    stream = BitStream(b'\xff\x01')

    assert stream.read_bits(3) == 0b111
    stream.align()
    assert stream.read_uint8() == 1


def test_align_on_write_pads_with_zeros(writer):
    writer.write_bits(0b1, 1)
    writer.align()
    writer.write_uint8(0xaa)

    assert writer.source.getvalue() == b'\x01\xaa'


def test_end_of_stream_is_not_zero():
    stream = BitStream(b'\x00')

    assert stream.read_uint8() == 0

    with pytest.raises(EndOfStream):
        stream.read_uint8()

    with pytest.raises(EndOfStream):
        BitStream(b'\x01').read_bits(16)

    with pytest.raises(EndOfStream):
        BitStream(b'\x01').read_bits(9)

    with pytest.raises(EndOfStream):
        BitStream(b'').read_boolean()


def test_fixed_width_reads():
    assert BitStream(b'\x01\x02').read_uint16() == 0x0102
    assert BitStream(b'\x01\x02').read_uint16(Endianess.LITTLE_ENDIAN) == 0x0201
    assert BitStream(b'\x01\x02\x03\x04').read_uint32() == 0x01020304
    assert BitStream(b'\xff' * 8).read_uint64() == (1 << 64) - 1
    assert BitStream(b'\x01' + b'\x00' * 6 + b'\x80').read_uint64(Endianess.LITTLE_ENDIAN) == 0x8000000000000001
    assert BitStream(b'\xff').read_sint8() == -1
    assert BitStream(b'\xff\xfe').read_sint16() == -2
    assert BitStream(struct.pack('>f', 1.5)).read_float32() == 1.5
    assert BitStream(struct.pack('<d', -0.25)).read_float64(Endianess.LITTLE_ENDIAN) == -0.25


def test_fixed_width_round_trip_with_an_open_byte(writer):
    writer.write_bits(0b1010, 4)
    writer.write_uint16(0xabcd, Endianess.LITTLE_ENDIAN)
    writer.write_uint64(0x0102030405060708)
    writer.write_sint32(-42)
    writer.write_float32(1.5)
    writer.write_float64(3.25, Endianess.LITTLE_ENDIAN)
    writer.flush()

    reader = BitStream(writer.source.getvalue())

    assert reader.read_bits(4) == 0b1010
    assert reader.read_uint16(Endianess.LITTLE_ENDIAN) == 0xabcd
    assert reader.read_uint64() == 0x0102030405060708
    assert reader.read_sint32() == -42
    assert reader.read_float32() == 1.5
    assert reader.read_float64(Endianess.LITTLE_ENDIAN) == 3.25


def test_write_fixed_width(writer):
    writer.write_uint8(0x01)
    writer.write_uint16(0x0203)
    writer.write_uint32(0x04050607, Endianess.LITTLE_ENDIAN)
    writer.write_sint8(-1)

    assert writer.source.getvalue() == b'\x01\x02\x03\x07\x06\x05\x04\xff'


def test_cstring():
    stream = BitStream(b'abc\x00def')

    assert stream.read_cstring() == b'abc'
    assert stream.read_bytes(3) == b'def'


def test_write_cstring(writer):
    writer.write_cstring(b'abc')

    assert writer.source.getvalue() == b'abc\x00'


def test_read_aligned_string():
    stream = BitStream(b'\x0fabc')

    assert stream.read_bits(4) == 0xf
    assert stream.read_aligned_string(3) == b'abc'


def test_read_bytes_with_an_open_byte():
    stream = BitStream(b'\xf1\x21')

    assert stream.read_bits(4) == 0x1
    # 0xf left in the first byte is the most significant part
    assert stream.read_bytes(1) == b'\xf1'


def test_bytes_with_an_open_byte_ignore_endianess():
    writer = BitStream(b'', endianess=Endianess.LITTLE_ENDIAN)
    writer.write_bits(0b1, 1)
    writer.write_bytes(b'ab')
    writer.flush()

    reader = BitStream(writer.source.getvalue(), endianess=Endianess.LITTLE_ENDIAN)

    assert reader.read_bits(1) == 0b1
    assert reader.read_bytes(2) == b'ab'


def test_invalid_arguments(writer):
    with pytest.raises(InvalidArgument):
        writer.write_bits(8, 3)

    with pytest.raises(InvalidArgument):
        writer.write_bits(-1, 8)

    with pytest.raises(InvalidArgument):
        writer.write_uint8(0x100)

    with pytest.raises(InvalidArgument):
        BitStream(b'\x00').read_bits(-1)


def test_invalid_state():
    stream = BitStream(b'\xff\xff')
    stream.read_bits(3)

    with pytest.raises(InvalidState):
        stream.write_bits(1, 1)

    stream.close()

    with pytest.raises(InvalidState):
        stream.read_bits(1)


def test_close_flushes_the_partial_byte(tmp_path):
    path = tmp_path / 'bits'

    with BitStream(open(path, 'wb')) as stream:
        stream.write_bits(0b111, 3)

    assert path.read_bytes() == b'\x07'


def test_seek_and_rewind():
    stream = BitStream(b'\x01\x02\x03')

    assert stream.read_bits(4) == 1
    stream.seek(2)
    assert stream.tell() == 2
    assert stream.read_uint8() == 3

    stream.rewind()
    assert stream.read_uint8() == 1


def test_read_bytes_are_the_bits_in_stream_order():
    data = b'\xf1\x21\x43'

    bits = BitStream(data)
    bits.read_bits(4)

    raw = BitStream(data, endianess=Endianess.LITTLE_ENDIAN)
    raw.read_bits(4)

    assert raw.read_bytes(2) == bits.read_bits(16).to_bytes(2, 'big')
