"""
A node is the unit of a format: it knows how to parse its value from a
BitStream and how to compose it back.

Sizes (and conditions) are resolved while the stream is walked, so that
they can depend on values parsed before.
"""
import logging
from collections.abc import Mapping
from typing import Dict

from .bits import integer_size
from .enum import Compliant
from .exceptions import (
    BitformException,
    InvalidArgument,
    InvalidFormat,
    Unsupported,
)
from .meta import NodeBase, NodeKind, Endianess, READ_ALL
from .properties import Context, Dependency, FieldPath


class Node(NodeBase):
    """Base class to subclass from"""
    kind: NodeKind = None

    def __init__(self):
        super().__init__()
        self.logger = logging.getLogger(f"{self.__module__}.{self.__class__.__name__}")

    def __repr__(self):
        return f'<{self.__class__.__name__}>'

    def get_dependencies(self) -> Dict[str, Dependency]:
        """Return the dictionary containing as key the attribute"""
        instance_dict = self.__dict__
        return {_k: _v for _k, _v in instance_dict.items() if isinstance(_v, Dependency)}

    def measure(self, value):
        '''The size of the value as seen by a size expression, None if it has no meaning.'''
        return None

    def _coerce_size(self, value) -> int:
        try:
            size = int(value)
        except (TypeError, ValueError):
            raise InvalidFormat(f'size definition resolved to {value!r} that is not an integer')

        if size < 0:
            raise InvalidFormat(f'size definition resolved to the negative value {size}')

        return size

    def resolve_size(self, stream, size, context: Context = None):
        '''Turn a size definition into an actual integer (or READ_ALL).

        A node used as size is parsed right now, from the stream.'''
        if isinstance(size, Node):
            return self._coerce_size(size.parse(stream, context))
        elif isinstance(size, Dependency):
            return self._coerce_size(size.resolve(context))
        elif size is READ_ALL:
            return READ_ALL
        elif isinstance(size, (int, float, str)):
            return self._coerce_size(size)
        elif callable(size):
            return self.resolve_size(stream, size(), context)

        raise InvalidFormat(f'unknown size definition {size!r}')

    def compose_size(self, stream, size, actual: int, context: Context = None):
        '''Mirror of resolve_size(): a node used as size gets the actual size composed into it.

        It returns None when there is nothing to check the actual size against.'''
        if isinstance(size, Node):
            size.compose(stream, actual, context)
            return actual
        elif size is READ_ALL:
            return None
        elif callable(size) and not isinstance(size, Dependency):
            return self.compose_size(stream, size(), actual, context)

        return self.resolve_size(stream, size, context)

    def parse(self, stream, context: Context = None):
        raise NotImplementedError('you need to implement this in the subclass')

    def compose(self, stream, value, context: Context = None) -> None:
        raise NotImplementedError('you need to implement this in the subclass')


class Struct(Node):
    '''Ordered group of nodes.

    The tree can be a mapping or a sequence of (key, node) couples: the
    values of the keyed nodes end up in a dictionary, where a dotted key like
    'header.length' creates nested dictionaries. An unkeyed node (an integer
    key in the mapping, a bare node in the sequence) is parsed only for its
    side effects on the stream, for this reason a struct containing one cannot
    be composed. A child that is not a node is a constant.

    If target is given the result is target(*values) with the values in
    declaration order, and composing reads them back as attributes.
    '''
    kind = NodeKind.STRUCT
    # kinds for which None is a value that can be composed
    _accepting_none = (NodeKind.OPTIONAL, NodeKind.CHOICE, NodeKind.TRANSLATE, NodeKind.CALLBACK)

    def __init__(self, tree, target=None):
        super().__init__()
        items = tree.items() if isinstance(tree, Mapping) else [
            _ if isinstance(_, tuple) else (None, _) for _ in tree
        ]

        self.tree = [
            (FieldPath(key) if isinstance(key, (str, FieldPath)) else None, node) for key, node in items
        ]
        self.target = target

    def __repr__(self):
        msg = []
        for index, (key, node) in enumerate(self.tree):
            msg.append('%s=%r' % (key if key is not None else '[%d]' % index, node))
        return '<%s(%s)>' % (self.__class__.__name__, ','.join(msg))

    @staticmethod
    def _label(key, index):
        return str(key) if key is not None else '[%d]' % index

    def parse(self, stream, context=None):
        data = {}
        scope = Context(data, father=context)

        for index, (key, node) in enumerate(self.tree):
            if isinstance(node, Node):
                self.logger.debug('parsing %s' % self._label(key, index))
                try:
                    result = node.parse(stream, scope)
                except BitformException as e:
                    e.chain.append(self._label(key, index))
                    raise
            else:
                result = node

            if key is not None:
                key.set_in(data, result)

        if self.target is not None:
            return self.target(*data.values())

        return data

    @staticmethod
    def _copy_mappings(value):
        '''Copy the nested mappings, the other values are shared: the derived
        sizes are written in the copy, never in the caller's value.'''
        if isinstance(value, Mapping):
            return {_k: Struct._copy_mappings(_v) for _k, _v in value.items()}

        return value

    def _to_mapping(self, value) -> dict:
        if isinstance(value, Mapping):
            return self._copy_mappings(value)

        heads = []
        for key, _ in self.tree:
            if key is not None and key.head not in heads:
                heads.append(key.head)

        if isinstance(value, (tuple, list)) and not hasattr(value, '_fields'):
            return self._copy_mappings(dict(zip(heads, value)))

        return self._copy_mappings({_: getattr(value, _) for _ in heads if hasattr(value, _)})

    def _derive_sizes(self, data, scope):
        '''Fill the missing values other fields depend on, from the size
        of the dependent values.'''
        for key, node in self.tree:
            if key is None or not isinstance(node, Node):
                continue

            try:
                value = key.get_from(data)
            except KeyError:
                continue

            for dependency in node.get_dependencies().values():
                measured = node.measure(value)
                if dependency.is_local and measured is not None:
                    dependency.resolve_and_set(scope, measured)

    def compose(self, stream, value, context=None):
        unkeyed = [_ for _, (key, node) in enumerate(self.tree) if key is None and isinstance(node, Node)]
        if unkeyed:
            raise Unsupported(f'cannot compose a struct with unkeyed members (positions {unkeyed})')

        data = self._to_mapping(value)
        scope = Context(data, father=context)

        self._derive_sizes(data, scope)

        for key, node in self.tree:
            if not isinstance(node, Node):
                continue

            self.logger.debug('composing %s' % key)
            try:
                try:
                    item = key.get_from(data)
                except KeyError:
                    item = None

                if item is None and node.kind not in self._accepting_none:
                    raise InvalidFormat(f"missing value for '{key}'")

                node.compose(stream, item, scope)
            except BitformException as e:
                e.chain.append(str(key))
                raise


class Array(Node):
    '''Repeat a node: the size is the number of items or READ_ALL to go on
    until the stream is over.'''
    kind = NodeKind.ARRAY

    def __init__(self, size, node):
        super().__init__()
        self.size = size
        self.node = node

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.size!r}, {self.node!r})>'

    def measure(self, value):
        return len(value)

    def _parse_item(self, stream, context, index):
        try:
            return self.node.parse(stream, context)
        except BitformException as e:
            e.chain.append('[%d]' % index)
            raise

    def parse(self, stream, context=None):
        items = []

        count = self.resolve_size(stream, self.size, context)
        if count is READ_ALL:
            while not stream.at_end():
                items.append(self._parse_item(stream, context, len(items)))

            return items

        self.logger.debug('parsing %d items' % count)
        for index in range(count):
            items.append(self._parse_item(stream, context, index))

        return items

    def compose(self, stream, value, context=None):
        expected = self.compose_size(stream, self.size, len(value), context)
        if expected is not None and expected != len(value):
            raise InvalidFormat(f'expected a fixed number of {expected} items, got {len(value)}')

        for index, item in enumerate(value):
            try:
                self.node.compose(stream, item, context)
            except BitformException as e:
                e.chain.append('[%d]' % index)
                raise


class Integer(Node):
    '''Unsigned (or two's complement if signed) integer of size bits, with
    a constant added after parsing. A size of zero doesn't read anything
    and returns the constant.'''
    kind = NodeKind.INTEGER

    def __init__(self, size, constant=0, endianess=Endianess.BIG_ENDIAN, signed=False):
        super().__init__()
        self.size = size
        self.constant = constant
        self.endianess = endianess
        self.signed = signed

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.size!r}, constant={self.constant}, {self.endianess.name})>'

    def _is_virtual(self):
        return isinstance(self.size, int) and self.size == 0

    def parse(self, stream, context=None):
        if self._is_virtual():
            return self.constant

        width = self.resolve_size(stream, self.size, context)
        if width is READ_ALL:
            raise InvalidFormat('an integer cannot extend until the end of the stream')

        raw = stream.read_bits(width, self.endianess)
        if self.signed and width and raw >> (width - 1):
            raw -= 1 << width

        self.logger.debug('read %d bits: %d' % (width, raw))

        return raw + self.constant

    def compose(self, stream, value, context=None):
        if self._is_virtual():
            return

        if value is None:
            raise InvalidFormat('missing value for the integer')

        raw = value - self.constant

        if self.signed:
            width = self.compose_size(stream, self.size, raw.bit_length() + 1, context)
        else:
            width = self.compose_size(stream, self.size, integer_size(raw), context)

        if width is None:
            raise InvalidFormat('an integer cannot extend until the end of the stream')

        if self.signed and raw:
            if width == 0 or not -(1 << (width - 1)) <= raw < (1 << (width - 1)):
                raise InvalidArgument(f'the value {raw} does not fit into {width} signed bits')
            raw &= (1 << width) - 1

        stream.write_bits(raw, width, self.endianess)


class Blob(Node):
    '''Contiguous chunk of bytes, starting at a byte boundary.

    If target is given the bytes are wrapped with target(data) and, when
    composing, unwrapped with bytes(value).'''
    kind = NodeKind.BLOB

    def __init__(self, size, target=None):
        super().__init__()
        self.size = size
        self.target = target

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.size!r})>'

    def _unwrap(self, value) -> bytes:
        # bytes(n) would build n null bytes
        if isinstance(value, int):
            raise InvalidArgument(f'cannot compose {value!r} as bytes')

        try:
            return bytes(value)
        except TypeError:
            raise InvalidArgument(f'cannot compose {value!r} as bytes')

    def measure(self, value):
        return len(self._unwrap(value))

    def parse(self, stream, context=None):
        size = self.resolve_size(stream, self.size, context)

        if size is READ_ALL:
            data = stream.read_all()
        else:
            data = stream.read_aligned_string(size)

        return self.target(data) if self.target is not None else data

    def compose(self, stream, value, context=None):
        data = self._unwrap(value)

        size = self.compose_size(stream, self.size, len(data), context)
        if size is not None and size != len(data):
            raise InvalidFormat(f'expected {size} bytes, got {len(data)}')

        stream.write_aligned_string(data)


class Boolean(Node):
    kind = NodeKind.BOOLEAN

    def __repr__(self):
        return f'<{self.__class__.__name__}()>'

    def parse(self, stream, context=None):
        return stream.read_boolean()

    def compose(self, stream, value, context=None):
        stream.write_boolean(value)


class Optional(Node):
    '''The node is parsed only if the condition holds, otherwise the value is None.

    The condition can be a node (parsed and converted to boolean), a Dependency,
    a callable taking the stream or a literal.'''
    kind = NodeKind.OPTIONAL

    def __init__(self, node, condition):
        super().__init__()
        self.node = node
        self.condition = condition

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.node!r}, if={self.condition!r})>'

    def _resolve_condition(self, stream, context):
        condition = self.condition

        if isinstance(condition, Node):
            return bool(condition.parse(stream, context))
        elif isinstance(condition, Dependency):
            return bool(condition.resolve(context))
        elif callable(condition):
            return bool(condition(stream))
        elif isinstance(condition, (bool, int)):
            return bool(condition)

        raise InvalidFormat(f'unknown condition definition {condition!r}')

    def parse(self, stream, context=None):
        if self._resolve_condition(stream, context):
            return self.node.parse(stream, context)

        return None

    def compose(self, stream, value, context=None):
        if isinstance(self.condition, Node):
            self.condition.compose(stream, value is not None, context)
        elif not (isinstance(self.condition, (Dependency, bool, int)) or callable(self.condition)):
            raise InvalidFormat(f'unknown condition definition {self.condition!r}')

        if value is not None:
            self.node.compose(stream, value, context)


class Choice(Node):
    """Select what follows from the value of the selector node.

    The mapping associates each selector value to a node (parsed next)
    or to a literal (returned as it is)

        Choice(Integer(8), {
            0x00: Integer(32),
            0x01: Blob(0x10),
            0xff: None,
        })

    Composing is possible only for values that correspond to exactly one
    literal of the mapping: the alternatives being nodes cannot be told
    apart from the value alone.
    """
    kind = NodeKind.CHOICE

    def __init__(self, selector, mapping):
        super().__init__()
        self.selector = selector
        self.mapping = mapping

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.selector!r}, {list(self.mapping)!r})>'

    def parse(self, stream, context=None):
        key = self.selector.parse(stream, context)

        try:
            choice = self.mapping[key]
        except (KeyError, TypeError):
            raise InvalidFormat(f'unknown selector value {key!r}, choices are {list(self.mapping)!r}')

        self.logger.debug('using choice %r' % (key,))

        if isinstance(choice, Node):
            return choice.parse(stream, context)

        return choice

    def compose(self, stream, value, context=None):
        keys = [_k for _k, _v in self.mapping.items() if not isinstance(_v, Node) and _v == value]

        if len(keys) != 1:
            raise Unsupported(f'cannot tell which choice composes {value!r}')

        self.selector.compose(stream, keys[0], context)


class Accumulator(object):
    '''Running total of a Delta node.

    The way the values are folded depends on the kind of the wrapped node:
    concatenation for blobs and arrays, logical AND for booleans, sum otherwise.
    '''
    _initial = {
        NodeKind.BLOB: bytes,
        NodeKind.ARRAY: list,
        NodeKind.BOOLEAN: lambda: True,
    }
    _fold = {
        NodeKind.BLOB: lambda total, value: total + bytes(value),
        NodeKind.ARRAY: lambda total, value: total + list(value),
        NodeKind.BOOLEAN: lambda total, value: total and bool(value),
    }

    def __init__(self, kind: NodeKind):
        self.kind = kind
        self.reset()

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.total!r})>'

    def reset(self) -> None:
        self.total = self._initial.get(self.kind, int)()

    def fold(self, value):
        fold = self._fold.get(self.kind, lambda total, value: total + value)
        self.total = fold(self.total, value)

        return self.total

    def unfold(self, total):
        '''The value that folded gives total'''
        if self.kind is NodeKind.BOOLEAN:
            raise Unsupported('a running logical AND cannot be decomposed')

        if self.kind in (NodeKind.BLOB, NodeKind.ARRAY):
            prefix_length = len(self.total)
            if self.kind is NodeKind.BLOB:
                total = bytes(total)
            else:
                total = list(total)

            if total[:prefix_length] != self.total:
                raise InvalidFormat(f'{total!r} does not extend the running total {self.total!r}')

            return total[prefix_length:]

        return total - self.total


class Delta(Node):
    '''The value is the running total of the values parsed by the wrapped node.

    The total is stored in the node itself and it persists across parse()
    calls: use reset() before walking an independent stream.'''
    kind = NodeKind.DELTA

    def __init__(self, node):
        super().__init__()
        self.node = node
        self.accumulator = Accumulator(node.kind)

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.node!r}, total={self.accumulator.total!r})>'

    @property
    def total(self):
        return self.accumulator.total

    def reset(self) -> None:
        self.accumulator.reset()

    def parse(self, stream, context=None):
        return self.accumulator.fold(self.node.parse(stream, context))

    def compose(self, stream, value, context=None):
        delta = self.accumulator.unfold(value)
        self.node.compose(stream, delta, context)
        self.accumulator.fold(delta)


class Translate(Node):
    '''Map the parsed value via a callable or a dictionary.

    With a dictionary the values not in it pass through unchanged (unless
    compliant includes Compliant.TRANSLATE) and composing does the reverse
    lookup. A callable can be reversed only if inverse is given, e.g.

        Translate(Integer(8), Color, inverse=lambda _: _.value)
    '''
    kind = NodeKind.TRANSLATE

    def __init__(self, node, translation, inverse=None, compliant=Compliant.NONE):
        super().__init__()
        if not (isinstance(translation, Mapping) or callable(translation)):
            raise InvalidArgument(f'unknown translation definition {translation!r}')

        self.node = node
        self.translation = translation
        self.inverse = inverse
        self.compliant = compliant

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.node!r})>'

    def parse(self, stream, context=None):
        value = self.node.parse(stream, context)

        if not isinstance(self.translation, Mapping):
            return self.translation(value)

        try:
            return self.translation[value]
        except (KeyError, TypeError):
            if self.compliant & Compliant.TRANSLATE:
                raise InvalidFormat(f'no translation for the value {value!r}')

            self.logger.warning(f'translation doesn\'t have element with value {value!r} in it')

            return value

    def compose(self, stream, value, context=None):
        if not isinstance(self.translation, Mapping):
            if self.inverse is None:
                raise Unsupported('cannot compose a translation defined by a callable without inverse')

            self.node.compose(stream, self.inverse(value), context)
            return

        for original, translated in self.translation.items():
            if translated == value:
                self.node.compose(stream, original, context)
                return

        raise InvalidFormat(f'no translation gives the value {value!r}')


class Skip(Node):
    '''Discard size bytes (aligning first if asked): they can't be composed back.'''
    kind = NodeKind.SKIP

    def __init__(self, size, align=False):
        super().__init__()
        self.size = size
        self.align = align

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.size!r}, align={self.align})>'

    def parse(self, stream, context=None):
        size = self.resolve_size(stream, self.size, context)

        if self.align:
            stream.align()

        if size is READ_ALL:
            stream.read_all()
        else:
            self.logger.debug('skipping %d bytes' % size)
            stream.read_bytes(size)

        return None

    def compose(self, stream, value, context=None):
        raise Unsupported('skipped bytes cannot be composed')


class Callback(Node):
    '''Delegate to user functions: read(stream) and write(stream, value).'''
    kind = NodeKind.CALLBACK

    def __init__(self, read, write=None):
        super().__init__()
        self.read = read
        self.write = write

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.read!r})>'

    def parse(self, stream, context=None):
        return self.read(stream)

    def compose(self, stream, value, context=None):
        if self.write is None:
            raise Unsupported('callback without a write function cannot be composed')

        self.write(stream, value)
