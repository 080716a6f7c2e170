import io
import logging
import os

from .exceptions import InvalidState


logger = logging.getLogger(__name__)


class Stream(object):
    '''This is a simple wrapper around bytes/path/file objects to
    uniform the byte source/sink contract used by BitStream:

     - read_bytes(n) and write_bytes(data)
     - at_end()
     - tell(), seek() and rewind()
     - close()
    '''
    def __init__(self, obj=b'', flags='r'):
        '''Here we normalize the object in order to be accessed as a normal file object'''
        self._type = type(obj)
        self.flags = flags
        self.obj = obj

        init_method_name = 'init_%s' % self.obj.__class__.__name__

        init_method = getattr(self, init_method_name, self.init_file)

        init_method()

    def __getattr__(self, name):
        # avoid recursion when the initialization failed
        if name == 'obj':
            raise AttributeError(name)

        return getattr(self.obj, name)

    def __repr__(self):
        return '<%s(%s)>' % (self.__class__.__name__, self._type.__name__)

    def init_str(self):
        '''We think this is a path'''
        mode = 'wb' if 'w' in self.flags else 'rb'
        logger.debug('opening path \'%s\' with mode %s' % (self.obj, mode))
        self.obj = open(self.obj, mode)

    def init_PosixPath(self):
        self.obj = str(self.obj)
        self.init_str()

    def init_bytes(self):
        '''We think these are raw bytes'''
        self.obj = io.BytesIO(self.obj)

    def init_bytearray(self):
        self.obj = io.BytesIO(bytes(self.obj))

    def init_file(self):
        '''Anything else must already quack like a binary file'''
        if not hasattr(self.obj, 'read') and not hasattr(self.obj, 'write'):
            raise ValueError('\'%s\' is the wrong kind of object to use as stream' % self._type.__name__)

    @property
    def closed(self) -> bool:
        return self.obj.closed

    @property
    def readable(self) -> bool:
        return self.obj.readable()

    @property
    def writable(self) -> bool:
        return self.obj.writable()

    def _check_open(self):
        if self.obj.closed:
            raise InvalidState('the stream is closed')

    def read_bytes(self, length: int) -> bytes:
        '''It can return less than length bytes when the data is over'''
        self._check_open()
        return self.obj.read(length)

    def write_bytes(self, data: bytes) -> int:
        self._check_open()
        return self.obj.write(data)

    def read_all(self) -> bytes:
        self._check_open()
        return self.obj.read()

    def at_end(self) -> bool:
        self._check_open()

        if self.obj.seekable():
            position = self.obj.tell()
            end = self.obj.seek(0, os.SEEK_END)
            self.obj.seek(position)

            return position >= end

        peek = getattr(self.obj, 'peek', None)
        if peek is None:
            raise InvalidState('cannot tell the end of a stream not seekable nor peekable')

        return len(peek(1)) == 0

    def tell(self) -> int:
        self._check_open()
        return self.obj.tell()

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        if not isinstance(offset, int):
            raise ValueError('\'%s\' is the wrong kind of offset to use' % offset.__class__.__name__)

        self._check_open()
        return self.obj.seek(offset, whence)

    def rewind(self) -> None:
        self.seek(0)

    def close(self) -> None:
        self.obj.close()
