import logging
import os

import pytest

from bitform.bitstream import BitStream


logging.basicConfig(level=logging.DEBUG if 'DEBUG' in os.environ else logging.INFO)


@pytest.fixture()
def writer():
    """Empty in-memory stream to compose into; its content is in writer.source.getvalue()."""
    return BitStream(b'')
