import logging
from collections.abc import Mapping
from typing import Tuple

from .exceptions import InvalidArgument, InvalidFormat


def _lookup(value, segment):
    if isinstance(value, Mapping):
        return value[segment]

    try:
        return getattr(value, segment)
    except AttributeError:
        raise KeyError(segment)


class FieldPath(object):
    '''Position of a value inside nested dictionaries.

    It's built from a dotted key, so that 'header.length' places the value
    under data['header']['length'].'''

    def __init__(self, key):
        if isinstance(key, FieldPath):
            segments = key.segments
        elif isinstance(key, str):
            segments = tuple(key.split('.'))
        else:
            segments = tuple(key)

        if not segments or '' in segments:
            raise InvalidArgument(f'{key!r} is not a valid field path')

        self.segments: Tuple[str, ...] = segments

    def __repr__(self):
        return f'<{self.__class__.__name__}({self})>'

    def __str__(self):
        return '.'.join(self.segments)

    def __eq__(self, other):
        return isinstance(other, FieldPath) and self.segments == other.segments

    def __hash__(self):
        return hash(self.segments)

    @property
    def head(self) -> str:
        return self.segments[0]

    def get_from(self, data):
        '''Raises KeyError if some component is missing'''
        value = data
        for segment in self.segments:
            value = _lookup(value, segment)

        return value

    def set_in(self, data: dict, value) -> None:
        '''Creates the intermediate dictionaries as needed; a dictionary already
        present at the final position is merged with the new one.'''
        position = data
        for segment in self.segments[:-1]:
            position = position.setdefault(segment, {})
            if not isinstance(position, dict):
                raise InvalidFormat(f"'{self}' crosses the non dictionary value at '{segment}'")

        last = self.segments[-1]
        existing = position.get(last)

        if isinstance(existing, dict) and isinstance(value, Mapping):
            existing.update(value)
        else:
            position[last] = value


class Context(object):
    '''The values of the struct being parsed (or composed) chained to the ones
    of the enclosing structs.'''

    def __init__(self, data, father=None):
        self.data = data
        self.father = father

    def __repr__(self):
        return f'<{self.__class__.__name__}({list(self.data)})>'

    @property
    def root(self):
        return get_root_from_context(self)


def get_root_from_context(instance):
    return get_instance_from_context(instance, condition=lambda x: x.father is None)


def get_instance_from_context(instance, condition):
    is_root = condition(instance)
    father = instance

    while not is_root:
        father = instance.father

        is_root = condition(father)
        instance = father

    return father


class Dependency:
    '''This makes the relation between fields possible.

    In practice this class allows to write something like

        Struct({
            'length': Integer(8),
            'data': Blob(Dependency('.length')),
        })

    and have the length of the blob named 'data' strictly connected to the
    value of the field named 'length', that must be parsed before it.

    The syntax for defining the expression is inspired from module resolution:

     - '.name' indicates a field at the same level
     - '..name' indicates a field of the enclosing struct (one more dot for each level up)
     - 'name' indicates a field of the outermost struct

    After the name a dotted path can reach into nested values.

    The relation is defined in one direction (for parsing) and it's reversed
    while composing: a missing referenced value is derived from the size of
    the dependent one (see resolve_and_set()).
    '''
    def __init__(self, expression: str):
        self.expression = expression
        self.logger = logging.getLogger(__name__)

        name = expression.lstrip('.')
        self._level = len(expression) - len(name)
        self._path = FieldPath(name)

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.expression})>'

    @property
    def is_local(self) -> bool:
        '''True if it refers to the same level of the struct using it'''
        return self._level == 1

    def resolve_scope(self, context: Context) -> Context:
        if context is None:
            raise InvalidFormat(f'cannot resolve {self!r} outside of a struct')

        if self._level == 0:
            self.logger.debug(' resolve from root')
            return get_root_from_context(context)

        scope = context
        for _ in range(self._level - 1):
            scope = scope.father
            if scope is None:
                raise InvalidFormat(f'{self!r} climbs above the outermost struct')

        return scope

    def _do_resolve(self, value):
        return value

    def resolve(self, context: Context):
        '''With this method we resolve the dependency with respect to the context
        passed as argument.'''
        scope = self.resolve_scope(context)

        try:
            value = self._path.get_from(scope.data)
        except KeyError:
            raise InvalidFormat(f'{self!r} refers to a value not available (yet)')

        self.logger.debug(' resolved %r with value %s' % (self, value))

        return self._do_resolve(value)

    def _do_value(self, size):
        """Returns the value to be set"""
        return size

    def resolve_and_set(self, context: Context, size: int) -> None:
        """Set the referenced value from the size of the dependent one, unless
        the caller already gave it (None counts as not given)."""
        scope = self.resolve_scope(context)

        try:
            if self._path.get_from(scope.data) is not None:
                return
        except KeyError:
            pass

        self.logger.debug(' setting %r to %d' % (self, self._do_value(size)))
        self._path.set_in(scope.data, self._do_value(size))


class RatioDependency(Dependency):

    def __init__(self, ratio, expression):
        super().__init__(expression)
        self._ratio = ratio

    def _do_resolve(self, value):
        return int(value / self._ratio)

    def _do_value(self, size):
        return size * self._ratio
