"""
Core module: drive a format over a stream.

"""
import logging
import os
from contextlib import contextmanager
from typing import List, Tuple

from .bitstream import BitStream
from .enum import Compliant
from .exceptions import InvalidFormat, InvalidState
from .fields import Node, Struct
from .meta import MetaRecord
from .streams import Stream


class FormatRunner(object):
    """Walk a whole stream with the root node of a format.

    After parsing, the data left in the stream is reported as a warning, or
    as an InvalidFormat exception if compliant includes Compliant.TRAILING.
    """

    def __init__(self, root: Node, compliant=Compliant.NONE):
        self.logger = logging.getLogger(f"{self.__module__}.{self.__class__.__name__}")
        self.root = root
        self.compliant = compliant

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.root!r})>'

    @staticmethod
    def _opens(stream) -> bool:
        '''A path is opened by the runner itself, that must close it afterwards'''
        return isinstance(stream, (str, os.PathLike))

    @contextmanager
    def _wrap(self, stream):
        if isinstance(stream, BitStream):
            yield stream
        elif self._opens(stream):
            with BitStream(stream) as bitstream:
                yield bitstream
        else:
            # caller's object: it stays open
            yield BitStream(stream)

    def parse(self, stream):
        with self._wrap(stream) as stream:
            self.logger.debug('parsing %r from %r' % (self.root, stream))
            value = self.root.parse(stream)

            if not stream.at_end():
                msg = f'not all the data was consumed: stopped at offset {stream.tell()}'
                if self.compliant & Compliant.TRAILING:
                    raise InvalidFormat(msg)
                self.logger.warning(msg)

        return value

    def compose(self, stream, value) -> None:
        with self._wrap(stream) as stream:
            if not stream.writable:
                raise InvalidState(f'cannot compose into {stream!r}: it is not writable')

            self.logger.debug('composing %r into %r' % (self.root, stream))
            self.root.compose(stream, value)

            # the last byte can be partial
            stream.flush()


def unpack(node: Node, data, compliant=Compliant.NONE):
    '''Parse data (bytes, a path, a file object or a BitStream) with the given format'''
    return FormatRunner(node, compliant=compliant).parse(data)


def pack(node: Node, value) -> bytes:
    stream = BitStream(Stream(b''))
    FormatRunner(node).compose(stream, value)

    return stream.source.getvalue()


class Record(metaclass=MetaRecord):
    """
    Declarative way of defining a Struct: the nodes defined as class
    attributes are the fields, in order of definition, and the parsed values
    become attributes of the instance.

        class Packet(Record):
            length = fields.Integer(8)
            data   = fields.Blob(Dependency('.length'))

        packet = Packet.unpack(b'\\x03abc')

        assert packet.data == b'abc'
        assert packet.pack() == b'\\x03abc'

    A Record subclass can be used as field of another one; subclasses inherit
    the fields of the parents, that come first.
    """

    def __init__(self, *args, **kwargs):
        names = self.get_ordered_fields_name()

        if len(args) > len(names):
            raise TypeError(f'{self.__class__.__name__} has {len(names)} fields, {len(args)} values given')

        values = dict(zip(names, args))
        for name, value in kwargs.items():
            if name not in names:
                raise TypeError(f"{self.__class__.__name__} has no field named '{name}'")
            if name in values:
                raise TypeError(f"value for field '{name}' given twice")
            values[name] = value

        for name in names:
            setattr(self, name, values.get(name))

    @classmethod
    def contribute_to_record(cls, record_cls, name):
        cls.format().contribute_to_record(record_cls, name)

    @classmethod
    def get_ordered_fields_name(cls) -> List[str]:
        return cls._meta.fields

    def get_fields(self) -> List[Tuple[str, object]]:
        '''It returns a list of couples (name, value) for each field.'''
        return [(_, getattr(self, _)) for _ in self.get_ordered_fields_name()]

    @classmethod
    def format(cls) -> Struct:
        return Struct([(_, cls._meta.nodes[_]) for _ in cls._meta.fields], target=cls)

    @classmethod
    def unpack(cls, data, compliant=Compliant.NONE) -> "Record":
        return unpack(cls.format(), data, compliant=compliant)

    def pack(self) -> bytes:
        return pack(self.format(), self)

    def __repr__(self):
        msg = []
        for field_name, value in self.get_fields():
            msg.append('%s=%r' % (field_name, value))
        return '<%s(%s)>' % (self.__class__.__name__, ','.join(msg))

    def __str__(self):
        msg = ''
        for field_name, value in self.get_fields():
            msg += '%s: %r\n' % (field_name, value)
        return msg

    def __eq__(self, other):
        return type(self) is type(other) and self.get_fields() == other.get_fields()
