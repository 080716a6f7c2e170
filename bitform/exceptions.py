class BitformException(Exception):
    '''Base class to extend in order to throw exception in bitform.

    Other than the message it takes the chain of the struct keys that
    caused the exception: it's filled while the exception travels up
    the format tree, innermost key first.
    '''

    def __init__(self, message='', chain=None):
        self.message = message
        self.chain = chain if chain is not None else []
        super().__init__(message)

    def __str__(self):
        if not self.chain:
            return self.message

        return '%s (at %s)' % (self.message, '.'.join(reversed([str(_) for _ in self.chain])))


class InvalidArgument(BitformException, ValueError):
    '''Programming error: negative widths, values that don't fit, malformed definitions.'''
    pass


class InvalidState(BitformException):
    pass


class EndOfStream(BitformException, EOFError):
    '''The stream ran out of data: it must not be confused with a value of zero.'''
    pass


class InvalidFormat(BitformException):
    pass


class Unsupported(BitformException):
    '''The node is not able to reconstruct the original bytes.'''
    pass
