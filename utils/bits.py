"""
Bit-vector helpers shared by the hash, the circuit and the artifact codec.
Bits are plain ``bool`` lists, most significant bit first when packed.
"""

from typing import Iterable, List, Sequence

import numpy as np

Bits = List[bool]


def pack_bits(bits: Sequence[bool]) -> bytes:
    """Pack bits big-endian into octets, zero-padding the final octet."""
    if len(bits) == 0:
        return b""
    return np.packbits(np.asarray(bits, dtype=np.uint8), bitorder="big").tobytes()


def unpack_bits(data: bytes, length: int = None) -> Bits:
    """Unpack octets into bits; ``length`` truncates the trailing padding."""
    bits = np.unpackbits(np.frombuffer(data, dtype=np.uint8), bitorder="big")
    if length is not None:
        bits = bits[:length]
    return bits.astype(bool).tolist()


def int_to_bits(value: int, width: int) -> Bits:
    return [bool((value >> (width - 1 - i)) & 1) for i in range(width)]


def as_bits(values: Iterable) -> Bits:
    """Coerce 0/1 integers (or field elements) into bools, rejecting anything else."""
    result = []
    for value in values:
        v = int(value)
        if v not in (0, 1):
            raise ValueError(f"Expected a bit, got {v}")
        result.append(bool(v))
    return result
