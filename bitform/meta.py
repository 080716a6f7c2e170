import logging
import sys
from enum import Enum, auto


class Endianess(Enum):
    LITTLE_ENDIAN = auto()
    BIG_ENDIAN    = auto()
    NETWORK       = auto()
    NATIVE        = auto()

    @property
    def is_big(self) -> bool:
        if self is Endianess.NATIVE:
            return sys.byteorder == 'big'

        return self is not Endianess.LITTLE_ENDIAN


class NodeKind(Enum):
    '''The closed set of node kinds a format tree is built from.'''
    STRUCT    = auto()
    ARRAY     = auto()
    INTEGER   = auto()
    BLOB      = auto()
    BOOLEAN   = auto()
    OPTIONAL  = auto()
    CHOICE    = auto()
    DELTA     = auto()
    TRANSLATE = auto()
    SKIP      = auto()
    CALLBACK  = auto()


class Sentinel(Enum):
    READ_ALL = auto()


# size expression meaning "until the stream is exhausted"
READ_ALL = Sentinel.READ_ALL


class NodeBase(object):

    def contribute_to_record(self, cls, name):
        if name in cls._meta.nodes:
            raise AttributeError(f'field {name} is already present in class {cls.__name__}')

        cls._meta.fields.append(name)
        cls._meta.nodes[name] = self


class Meta(object):
    """Class containing metadata about the record"""

    def __init__(self):
        self.fields = []
        self.nodes = {}


class MetaRecord(type):

    def __new__(cls, names, bases, attrs):
        '''Collect the nodes defined as class attributes, in declaration order,
        the parents' ones first.'''
        module = attrs.pop('__module__')
        classcell = attrs.pop('__classcell__', None)

        new_attrs = {
            '__module__': module,
        }
        if classcell is not None:
            new_attrs['__classcell__'] = classcell
        new_cls = super(MetaRecord, cls).__new__(cls, names, bases, new_attrs)

        new_cls._meta = Meta()

        # handle inheritance
        parents = [_ for _ in bases if isinstance(_, MetaRecord)]
        for parent in parents:
            for obj_name in parent._meta.fields:
                new_cls._meta.fields.append(obj_name)
                new_cls._meta.nodes[obj_name] = parent._meta.nodes[obj_name]

        for obj_name, obj in attrs.items():
            new_cls.add_to_class(obj_name, obj)

        cls.logger = logging.getLogger(__name__)

        return new_cls

    def add_to_class(cls, name, value):
        if hasattr(value, 'contribute_to_record'):
            cls.logger.debug('contribute_to_record() found for field \'%s\'' % name)
            value.contribute_to_record(cls, name)
        else:
            setattr(cls, name, value)
