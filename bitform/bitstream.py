"""
Bit granular reading and writing on top of a byte source/sink.

Inside a byte the bits are consumed starting from the least significant
one; a value spanning more than one chunk (the rest of the open byte,
whole bytes, a final partial byte) is assembled so that for big endian
the first chunk is the most significant part and for little endian the
least significant one.

At most one byte is "open" between two calls: the partially read (or
written) one.
"""
import logging
import struct

from .bits import BitBuffer, WORD_SIZE
from .exceptions import EndOfStream, InvalidArgument, InvalidState
from .meta import Endianess
from .streams import Stream


class BitStream(object):
    # bitmask[n] extracts the n least significant bits
    _bitmask = [(1 << _) - 1 for _ in range(9)]

    def __init__(self, source, endianess=Endianess.BIG_ENDIAN):
        self.logger = logging.getLogger(f"{self.__module__}.{self.__class__.__name__}")
        self.source = source if isinstance(source, Stream) else Stream(source)
        self.endianess = endianess
        self._byte = None
        self._used = 0
        self._writing = False

    def __repr__(self):
        return '<%s(%r, byte=%r, used=%d)>' % (self.__class__.__name__, self.source, self._byte, self._used)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    @property
    def closed(self) -> bool:
        return self.source.closed

    @property
    def readable(self) -> bool:
        return self.source.readable

    @property
    def writable(self) -> bool:
        return self.source.writable

    def _is_big(self, endianess) -> bool:
        return (endianess or self.endianess).is_big

    def _clear(self):
        self._byte = None
        self._used = 0

    def _check_direction(self, writing):
        if self.source.closed:
            raise InvalidState('the stream is closed')

        if self._byte is not None and self._writing != writing:
            raise InvalidState('a partial byte is open for %s' % ('writing' if self._writing else 'reading'))

    def _fetch(self, length: int) -> bytes:
        data = self.source.read_bytes(length)
        self.logger.debug('fetched %d bytes' % len(data))
        if len(data) < length:
            raise EndOfStream(f'needed {length} bytes but only {len(data)} were available')

        return data

    def _emit(self, data: bytes) -> None:
        self.source.write_bytes(data)

    def _put(self, bits: int, width: int) -> None:
        '''Store bits into the open byte, flushing it when complete.'''
        if self._byte is None:
            self._byte = 0
            self._used = 0
            self._writing = True

        self._byte |= bits << self._used
        self._used += width

        if self._used == 8:
            byte = self._byte
            self._clear()
            self._emit(bytes([byte]))

    def read_bits(self, length: int, endianess: Endianess = None) -> int:
        '''Read length bits as an unsigned integer.

        When the raw bytes are wanted instead use read_bytes(), that goes
        through this same path if a byte is open.'''
        self._check_direction(writing=False)

        if length < 0:
            raise InvalidArgument(f'cannot read {length} bits')

        if length == 0:
            return 0

        big_endian = self._is_big(endianess)

        # no byte started: whole bytes can be read directly
        if self._byte is None and length % 8 == 0:
            return int.from_bytes(self._fetch(length // 8), 'big' if big_endian else 'little')

        buf = BitBuffer(length)
        add = buf.push if big_endian else buf.unshift

        if self._byte is None:
            self._byte = self._fetch(1)[0]
            self._used = 0
            self._writing = False

        remaining = 8 - self._used

        if length <= remaining:
            # can be satisfied with the open byte
            add(self._byte & self._bitmask[length], length)
            self._byte >>= length
            self._used += length
        else:
            add(self._byte & self._bitmask[remaining], remaining)
            length -= remaining
            self._clear()

            for byte in self._fetch(length // 8):
                add(byte, 8)

            length %= 8
            if length:
                add(self.read_bits(length), length)

        if self._used == 8:
            self._clear()

        return buf.value

    def write_bits(self, value: int, length: int, endianess: Endianess = None) -> None:
        self._check_direction(writing=True)

        if length < 0:
            raise InvalidArgument(f'cannot write {length} bits')

        if value < 0 or value >> length:
            raise InvalidArgument(f'the value {value} does not fit into {length} unsigned bits')

        if length == 0:
            return

        big_endian = self._is_big(endianess)
        order = 'big' if big_endian else 'little'

        if self._byte is None and length % 8 == 0:
            self._emit(value.to_bytes(length // 8, order))
            return

        buf = BitBuffer.from_number(value, length)
        take = buf.shift if big_endian else buf.pop

        # complete the open byte first
        head = min(length, 8 - self._used)
        self._put(take(head), head)
        length -= head

        word = WORD_SIZE * 8
        while length >= word:
            self._emit(take(word).to_bytes(WORD_SIZE, order))
            length -= word

        while length >= 8:
            self._emit(bytes([take(8)]))
            length -= 8

        if length:
            self._put(take(length), length)

    def align(self) -> None:
        '''Discard the rest of the open byte.

        When writing, the open byte is flushed with the unused bits set
        to zero: write them explicitly if a different padding is needed.'''
        if self._byte is not None and self._writing:
            self.logger.debug('flushing partial byte 0x%02x (%d bits used)' % (self._byte, self._used))
            self._emit(bytes([self._byte]))
        elif self._byte is not None:
            self.logger.debug('discarding %d unread bits' % (8 - self._used))

        self._clear()

    def flush(self) -> None:
        if self._writing:
            self.align()

    def read_bytes(self, length: int) -> bytes:
        '''The bits of read_bits() as raw bytes, in stream order: they don't
        need to start at a byte boundary.'''
        if length == 0:
            return b''

        if self._byte is None:
            self._check_direction(writing=False)
            return self._fetch(length)

        return self.read_bits(length * 8, Endianess.BIG_ENDIAN).to_bytes(length, 'big')

    def write_bytes(self, data: bytes) -> None:
        if not data:
            return

        if self._byte is None:
            self._check_direction(writing=True)
            self._emit(data)
        else:
            self.write_bits(int.from_bytes(data, 'big'), len(data) * 8, Endianess.BIG_ENDIAN)

    def read_all(self) -> bytes:
        '''Everything left in the stream, starting from the next whole byte.'''
        self._check_direction(writing=False)
        self.align()

        return self.source.read_all()

    def read_boolean(self) -> bool:
        return self.read_bits(1) == 1

    def write_boolean(self, value: bool) -> None:
        self.write_bits(1 if value else 0, 1)

    def _read_fixed(self, code: str, size: int, endianess: Endianess = None):
        big_endian = self._is_big(endianess)

        if self._byte is not None:
            raw = self.read_bits(size * 8, endianess).to_bytes(size, 'big' if big_endian else 'little')
        else:
            self._check_direction(writing=False)
            raw = self._fetch(size)

        return struct.unpack(('>' if big_endian else '<') + code, raw)[0]

    def _write_fixed(self, code: str, size: int, value, endianess: Endianess = None) -> None:
        big_endian = self._is_big(endianess)

        try:
            raw = struct.pack(('>' if big_endian else '<') + code, value)
        except struct.error as e:
            raise InvalidArgument(str(e))

        if self._byte is not None:
            self.write_bits(int.from_bytes(raw, 'big' if big_endian else 'little'), size * 8, endianess)
        else:
            self._check_direction(writing=True)
            self._emit(raw)

    def read_uint8(self) -> int:
        return self._read_fixed('B', 1)

    def read_uint16(self, endianess: Endianess = None) -> int:
        return self._read_fixed('H', 2, endianess)

    def read_uint32(self, endianess: Endianess = None) -> int:
        return self._read_fixed('I', 4, endianess)

    def read_uint64(self, endianess: Endianess = None) -> int:
        first = self.read_uint32(endianess)
        second = self.read_uint32(endianess)

        high, low = (first, second) if self._is_big(endianess) else (second, first)

        return (high << 32) | low

    def read_sint8(self) -> int:
        return self._read_fixed('b', 1)

    def read_sint16(self, endianess: Endianess = None) -> int:
        return self._read_fixed('h', 2, endianess)

    def read_sint32(self, endianess: Endianess = None) -> int:
        return self._read_fixed('i', 4, endianess)

    def read_sint64(self, endianess: Endianess = None) -> int:
        return self._read_fixed('q', 8, endianess)

    def read_float32(self, endianess: Endianess = None) -> float:
        return self._read_fixed('f', 4, endianess)

    def read_float64(self, endianess: Endianess = None) -> float:
        return self._read_fixed('d', 8, endianess)

    def write_uint8(self, value: int) -> None:
        self._write_fixed('B', 1, value)

    def write_uint16(self, value: int, endianess: Endianess = None) -> None:
        self._write_fixed('H', 2, value, endianess)

    def write_uint32(self, value: int, endianess: Endianess = None) -> None:
        self._write_fixed('I', 4, value, endianess)

    def write_uint64(self, value: int, endianess: Endianess = None) -> None:
        if value < 0 or value >> 64:
            raise InvalidArgument(f'the value {value} does not fit into 64 unsigned bits')

        high, low = value >> 32, value & 0xffffffff
        first, second = (high, low) if self._is_big(endianess) else (low, high)

        self.write_uint32(first, endianess)
        self.write_uint32(second, endianess)

    def write_sint8(self, value: int) -> None:
        self._write_fixed('b', 1, value)

    def write_sint16(self, value: int, endianess: Endianess = None) -> None:
        self._write_fixed('h', 2, value, endianess)

    def write_sint32(self, value: int, endianess: Endianess = None) -> None:
        self._write_fixed('i', 4, value, endianess)

    def write_sint64(self, value: int, endianess: Endianess = None) -> None:
        self._write_fixed('q', 8, value, endianess)

    def write_float32(self, value: float, endianess: Endianess = None) -> None:
        self._write_fixed('f', 4, value, endianess)

    def write_float64(self, value: float, endianess: Endianess = None) -> None:
        self._write_fixed('d', 8, value, endianess)

    def read_cstring(self) -> bytes:
        '''Bytes until the next null one (not included)'''
        data = []
        while (byte := self.read_bytes(1)) != b'\x00':
            data.append(byte)

        return b''.join(data)

    def write_cstring(self, data: bytes) -> None:
        self.write_bytes(data + b'\x00')

    def read_aligned_string(self, length: int) -> bytes:
        self.align()
        return self.read_bytes(length)

    def write_aligned_string(self, data: bytes) -> None:
        self.align()
        self.write_bytes(data)

    def at_end(self) -> bool:
        if self._byte is not None and not self._writing:
            return False

        return self.source.at_end()

    def tell(self) -> int:
        return self.source.tell()

    def seek(self, offset: int, whence: int = 0) -> int:
        '''Moving drops the open byte (flushing it if we are writing)'''
        self.align()
        return self.source.seek(offset, whence)

    def rewind(self) -> None:
        self.seek(0)

    def close(self) -> None:
        if not self.source.closed:
            self.flush()
        self.source.close()
