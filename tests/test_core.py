import gc
import logging
import warnings

import pytest

from bitform.bitstream import BitStream
from bitform.core import FormatRunner, Record, pack, unpack
from bitform.enum import Compliant
from bitform.exceptions import EndOfStream, InvalidFormat, InvalidState
from bitform.fields import Blob, Boolean, Integer, Struct
from bitform.properties import Dependency


def header_format():
    return Struct({
        'version': Integer(3),
        'compressed': Boolean(),
        'encrypted': Boolean(),
        'reserved': Integer(3),
        'length': Integer(16),
        'payload': Blob(Dependency('.length')),
    })


def test_runner_parse():
    value = FormatRunner(header_format()).parse(b'\x0d\x00\x02hi')

    assert value == {
        'version': 5,
        'compressed': True,
        'encrypted': False,
        'reserved': 0,
        'length': 2,
        'payload': b'hi',
    }


def test_runner_parse_compose_symmetry(writer):
    data = b'\x0d\x00\x02hi'
    runner = FormatRunner(header_format())

    value = runner.parse(data)
    runner.compose(writer, value)

    assert writer.source.getvalue() == data


def test_runner_file(tmp_path):
    path = tmp_path / 'header.bin'
    value = {
        'version': 5,
        'compressed': True,
        'encrypted': False,
        'reserved': 0,
        'payload': b'kebab',
    }

    runner = FormatRunner(header_format())

    with BitStream(open(path, 'wb')) as stream:
        runner.compose(stream, value)

    assert path.read_bytes() == b'\x0d\x00\x05kebab'
    assert runner.parse(str(path))['payload'] == b'kebab'


def test_runner_trailing_data(caplog):
    with caplog.at_level(logging.WARNING):
        assert unpack(Integer(8), b'\x01\x02') == 1

    assert 'not all the data was consumed: stopped at offset 1' in caplog.text

    with pytest.raises(InvalidFormat):
        unpack(Integer(8), b'\x01\x02', compliant=Compliant.TRAILING)


def test_runner_trailing_bits():
    """The unread bits of the last byte count as trailing data."""
    with pytest.raises(InvalidFormat):
        unpack(Integer(4), b'\x01', compliant=Compliant.TRAILING)


def test_runner_compose_not_writable(tmp_path):
    path = tmp_path / 'read-only'
    path.write_bytes(b'')

    with pytest.raises(InvalidState):
        FormatRunner(Integer(8)).compose(str(path), 1)


def test_pack_flushes_the_last_byte():
    assert pack(Integer(3), 0b101) == b'\x05'


class Packet(Record):
    length = Integer(8)
    data = Blob(Dependency('.length'))


def test_record():
    packet = Packet.unpack(b'\x03abc')

    assert packet.length == 3
    assert packet.data == b'abc'

    assert packet.pack() == b'\x03abc'
    assert Packet.get_ordered_fields_name() == ['length', 'data']
    assert packet.get_fields() == [('length', 3), ('data', b'abc')]


def test_record_derived_length():
    packet = Packet(data=b'kebab')

    assert packet.length is None
    assert packet.pack() == b'\x05kebab'


def test_record_init():
    assert Packet(3, b'abc') == Packet(length=3, data=b'abc')
    assert Packet(3, b'abc') != Packet(3, b'abd')

    with pytest.raises(TypeError):
        Packet(1, b'a', 2)

    with pytest.raises(TypeError):
        Packet(foo=1)

    with pytest.raises(TypeError):
        Packet(1, length=2)


def test_record_repr():
    packet = Packet(3, b'abc')

    assert repr(packet) == "<Packet(length=3,data=b'abc')>"
    assert str(packet) == "length: 3\ndata: b'abc'\n"


def test_record_inheritance():
    class Checked(Packet):
        crc = Integer(8)

    assert Checked.get_ordered_fields_name() == ['length', 'data', 'crc']

    checked = Checked.unpack(b'\x02hi\xff')

    assert checked.data == b'hi'
    assert checked.crc == 0xff


def test_record_duplicate_field():
    with pytest.raises(AttributeError):
        class Wrong(Packet):
            length = Integer(16)


def test_record_keeps_other_attributes():
    class WithMethod(Record):
        value = Integer(8)

        def double(self):
            return self.value * 2

    assert WithMethod.get_ordered_fields_name() == ['value']
    assert WithMethod.unpack(b'\x15').double() == 42


class Header(Record):
    magic = Blob(2)
    length = Integer(8)


class Message(Record):
    header = Header
    body = Blob(Dependency('.header.length'))


def test_record_nested():
    message = Message.unpack(b'MG\x02hi')

    assert isinstance(message.header, Header)
    assert message.header.magic == b'MG'
    assert message.header.length == 2
    assert message.body == b'hi'

    assert message == Message(header=Header(b'MG', 2), body=b'hi')
    assert message.pack() == b'MG\x02hi'


def test_record_error_chain():
    with pytest.raises(EndOfStream) as excinfo:
        Message.unpack(b'MG\x05hi')

    assert excinfo.value.chain == ['body']


def test_runner_closes_the_paths_it_opens(tmp_path):
    path = tmp_path / 'value.bin'
    path.write_bytes(b'\x2a')

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always', ResourceWarning)

        assert unpack(Integer(8), str(path)) == 42
        assert unpack(Integer(8), path) == 42

        with pytest.raises(InvalidState):
            FormatRunner(Integer(8)).compose(path, 1)

        gc.collect()

    assert [str(_.message) for _ in caught if issubclass(_.category, ResourceWarning)] == []


def test_runner_leaves_the_caller_stream_open(tmp_path):
    path = tmp_path / 'value.bin'
    path.write_bytes(b'\x2a')

    with open(path, 'rb') as fd:
        assert unpack(Integer(8), fd) == 42
        assert not fd.closed
