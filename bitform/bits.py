"""
Arbitrary width unsigned integers, used as the intermediate representation
of every value read from or written to a BitStream.

The bits are stored by a backend chosen once at construction: a plain
integer when the declared width fits a machine word, a bitstring.BitArray
otherwise. The two produce identical results bit by bit.
"""
import logging
import struct

from bitstring import BitArray, Bits

from .exceptions import InvalidArgument, InvalidState


logger = logging.getLogger(__name__)

# number of bytes of a native machine word
WORD_SIZE = struct.calcsize('P')


def integer_size(value: int) -> int:
    '''Minimal number of bits needed to represent the unsigned value (zero needs one).'''
    if value < 0:
        raise InvalidArgument(f'cannot size the negative value {value}')

    return max(value.bit_length(), 1)


class UIntBackend(object):
    """Storage for the bits of a BitBuffer.

    The bits are a sequence where the head is the most significant
    part of the value and the tail the least significant one."""

    def push(self, bits: int, width: int) -> None:
        raise NotImplementedError()

    def unshift(self, bits: int, width: int) -> None:
        raise NotImplementedError()

    def pop(self, width: int) -> int:
        raise NotImplementedError()

    def shift(self, width: int) -> int:
        raise NotImplementedError()

    def to_bytes(self) -> bytes:
        raise NotImplementedError()

    @property
    def value(self) -> int:
        raise NotImplementedError()

    @property
    def size(self) -> int:
        raise NotImplementedError()


class NativeBackend(UIntBackend):
    capacity = WORD_SIZE * 8

    def __init__(self):
        self._value = 0
        self._size = 0

    def _check_capacity(self, width):
        if self._size + width > self.capacity:
            raise InvalidState(f'a native buffer cannot hold more than {self.capacity} bits')

    def push(self, bits, width):
        self._check_capacity(width)
        self._value = (self._value << width) | bits
        self._size += width

    def unshift(self, bits, width):
        self._check_capacity(width)
        self._value = (bits << self._size) | self._value
        self._size += width

    def pop(self, width):
        bits = self._value & ((1 << width) - 1)
        self._value >>= width
        self._size -= width

        return bits

    def shift(self, width):
        self._size -= width
        bits = self._value >> self._size
        self._value &= (1 << self._size) - 1

        return bits

    def to_bytes(self):
        return self._value.to_bytes((self._size + 7) // 8, 'big')

    @property
    def value(self):
        return self._value

    @property
    def size(self):
        return self._size


class BigBackend(UIntBackend):

    def __init__(self):
        self._bits = BitArray()

    def push(self, bits, width):
        self._bits.append(Bits(uint=bits, length=width))

    def unshift(self, bits, width):
        self._bits.prepend(Bits(uint=bits, length=width))

    def pop(self, width):
        tail = self._bits[-width:]
        del self._bits[-width:]

        return tail.uint

    def shift(self, width):
        head = self._bits[:width]
        del self._bits[:width]

        return head.uint

    def to_bytes(self):
        padding = -len(self._bits) % 8
        if padding:
            return (Bits(length=padding) + self._bits).bytes

        return self._bits.bytes

    @property
    def value(self):
        return self._bits.uint if len(self._bits) else 0

    @property
    def size(self):
        return len(self._bits)


class BitBuffer(object):
    """Accumulator of bits.

    push() and pop() work on the tail of the sequence (the least significant
    bits), unshift() and shift() on its head (the most significant ones):

        >>> buf = BitBuffer(12)
        >>> buf.push(0b110).push(0b11).value == 0b11011
        True
        >>> buf.shift(2) == 0b11
        True

    bit_width is the capacity negotiated at construction and it's only used
    to choose the backend.
    """

    def __init__(self, bit_width: int = 0):
        if bit_width < 0:
            raise InvalidArgument(f'a buffer cannot be {bit_width} bits wide')

        self.bit_width = bit_width
        self._backend = BigBackend() if (bit_width / 8) > WORD_SIZE else NativeBackend()

        if self.is_big:
            logger.debug('using bitstring for %d bits' % bit_width)

    @classmethod
    def from_binary(cls, data: bytes, big_endian: bool = True) -> "BitBuffer":
        buf = cls(len(data) * 8)

        for byte in data:
            if big_endian:
                buf.push(byte, 8)
            else:
                buf.unshift(byte, 8)

        return buf

    @classmethod
    def from_number(cls, number: int, width: int = None) -> "BitBuffer":
        width = integer_size(number) if width is None else width
        buf = cls(width)
        buf.push(number, width)

        return buf

    integer_size = staticmethod(integer_size)

    def __repr__(self):
        return '<%s(%s, size=%d)>' % (self.__class__.__name__, bin(self.value), self.size)

    def __len__(self):
        return self.size

    @property
    def is_big(self) -> bool:
        return isinstance(self._backend, BigBackend)

    @property
    def value(self) -> int:
        return self._backend.value

    @property
    def size(self) -> int:
        return self._backend.size

    def _normalize(self, bits, width):
        if bits < 0:
            raise InvalidArgument(f'only unsigned values can be stored, got {bits}')

        if width is None:
            width = integer_size(bits)
        elif width < 0:
            raise InvalidArgument(f'width must not be negative, got {width}')

        return bits & ((1 << width) - 1), width

    def _check_available(self, width):
        if width < 0:
            raise InvalidArgument(f'width must not be negative, got {width}')

        if width > self.size:
            raise InvalidState(f'cannot remove {width} bits from a buffer holding {self.size}')

    def push(self, bits: int, width: int = None) -> "BitBuffer":
        bits, width = self._normalize(bits, width)
        if width:
            self._backend.push(bits, width)

        return self

    def unshift(self, bits: int, width: int = None) -> "BitBuffer":
        bits, width = self._normalize(bits, width)
        if width:
            self._backend.unshift(bits, width)

        return self

    def pop(self, width: int) -> int:
        self._check_available(width)

        return self._backend.pop(width) if width else 0

    def shift(self, width: int) -> int:
        self._check_available(width)

        return self._backend.shift(width) if width else 0

    def get_binary(self, big_endian: bool = True) -> bytes:
        '''Export the value as bytes, the first byte zero padded when the
        size is not a multiple of eight.'''
        data = self._backend.to_bytes()

        return data if big_endian else data[::-1]

    def hex(self) -> str:
        return '%x' % self.value
