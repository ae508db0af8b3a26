import struct
import zlib

import pytest


def _chunk(kind: bytes, payload: bytes) -> bytes:
    return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", zlib.crc32(kind + payload))


@pytest.fixture()
def broken_png() -> bytes:
    """A PNG with a valid header whose pixel stream is cut by a malformed chunk.

    The header parses cleanly, so ``Image.open`` succeeds and the failure only
    shows up while ``load()`` reads the second half of the pixel data.
    """
    width = height = 16
    rows = b"".join(b"\x00" + bytes(range(width * 3)) for _ in range(height))
    stream = zlib.compress(rows, 0)
    half = len(stream) // 2
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _chunk(b"IHDR", header)
        + _chunk(b"IDAT", stream[:half])
        + struct.pack(">I", len(stream) - half)
        + b"\x03Z\x03Z"
        + stream[half:]
    )
