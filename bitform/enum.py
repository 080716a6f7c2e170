from enum import Flag


class Compliant(Flag):
    '''It indicates which degree of compliantness the data must reflect the format'''
    NONE      = 0
    TRAILING  = 1 << 0  # unconsumed data after the root node is an error
    TRANSLATE = 1 << 1  # values missing from a translation map are an error
