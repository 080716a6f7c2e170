"""
# Bitform: declarative binary formats.

A format is described once as a tree of nodes (see fields.py) and then used
in both directions:

 1. parse(): the more straightforward, i.e., reading the binary data
    and build a high-level representation of that (dictionaries, lists,
    integers, bytes or user defined types).
    The sizes are resolved while reading, so that a field can depend on
    the value of a field read before it.

 2. compose(): encode the high-level representation into binary data,
    byte exact, walking the same tree.

The reading and writing happen on a BitStream (see bitstream.py) so that
fields don't need to be aligned to bytes: a field can be three bits long
and the next one start in the middle of a byte.

    from bitform.core import pack, unpack
    from bitform.fields import Struct, Integer, Blob
    from bitform.properties import Dependency

    fmt = Struct({
        'len': Integer(8),
        'data': Blob(Dependency('.len')),
    })

    unpack(fmt, b'\\x03abc')  # {'len': 3, 'data': b'abc'}
    pack(fmt, {'data': b'abc'})  # b'\\x03abc'

"""
