"""
Collision-resistant bit-string hash and the binary Merkle tree of voter
public keys built on it.
"""

import logging
import struct
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from cryptography.hazmat.primitives import hashes

from utils.bits import Bits, pack_bits, unpack_bits

logger = logging.getLogger(__name__)

_HASH_ALGORITHMS = {
    "sha256": hashes.SHA256,
    "sha512": hashes.SHA512,
    "sha3_256": hashes.SHA3_256,
}


class MerkleError(ValueError):
    """Malformed tree input or out-of-range leaf index"""
    pass


class DigestHash:
    """
    Hash over bit strings, truncated to ``digest_bits``.

    The bit length is absorbed ahead of the packed bits so strings that differ
    only in trailing zero padding hash differently.
    """

    def __init__(self, name: str = "sha256", digest_bits: int = 255):
        if name not in _HASH_ALGORITHMS:
            raise ValueError(f"Unsupported hash algorithm: {name}")
        algorithm = _HASH_ALGORITHMS[name]
        if digest_bits > algorithm.digest_size * 8:
            raise ValueError(
                f"{name} cannot produce {digest_bits}-bit digests")
        self.name = name
        self.digest_bits = digest_bits
        self._algorithm = algorithm

    def hash_bits(self, bits: Sequence[bool]) -> Bits:
        h = hashes.Hash(self._algorithm())
        h.update(struct.pack(">I", len(bits)))
        h.update(pack_bits(bits))
        return unpack_bits(h.finalize(), self.digest_bits)

    def hash_pair(self, left: Sequence[bool], right: Sequence[bool]) -> Bits:
        return self.hash_bits(list(left) + list(right))

    def __repr__(self):
        return f"DigestHash({self.name!r}, digest_bits={self.digest_bits})"


@dataclass(frozen=True)
class MerklePath:
    """Inclusion path: leaf address and sibling digests from the leaf level up"""
    address: int
    copath: Tuple[Tuple[bool, ...], ...]

    @property
    def depth(self) -> int:
        return len(self.copath)

    def address_bits(self) -> Bits:
        """Address bits, least significant (leaf level) first"""
        return [bool((self.address >> level) & 1) for level in range(self.depth)]

    @classmethod
    def from_address_bits(cls, address_bits: Sequence[bool],
                          copath: Sequence[Sequence[bool]]) -> 'MerklePath':
        address = 0
        for level, bit in enumerate(address_bits):
            address |= int(bool(bit)) << level
        return cls(address=address, copath=tuple(tuple(node) for node in copath))

    def compute_root(self, leaf: Sequence[bool], hasher: DigestHash) -> Bits:
        node = list(leaf)
        index = self.address
        for sibling in self.copath:
            if index & 1:
                node = hasher.hash_pair(sibling, node)
            else:
                node = hasher.hash_pair(node, sibling)
            index >>= 1
        return node

    def verify(self, leaf: Sequence[bool], root: Sequence[bool], hasher: DigestHash) -> bool:
        return self.compute_root(leaf, hasher) == list(root)


class MerkleTree:
    """Complete binary Merkle tree over exactly ``2 ** depth`` leaves"""

    arity = 2

    def __init__(self, leaves: Sequence[Sequence[bool]], depth: int, hasher: DigestHash):
        expected = self.arity ** depth
        if len(leaves) != expected:
            raise MerkleError(
                f"Tree of depth {depth} needs {expected} leaves, got {len(leaves)}")
        for i, leaf in enumerate(leaves):
            if len(leaf) != hasher.digest_bits:
                raise MerkleError(
                    f"Leaf {i} has {len(leaf)} bits, expected {hasher.digest_bits}")

        self.depth = depth
        self.hasher = hasher
        self._levels: List[List[Bits]] = [[list(leaf) for leaf in leaves]]
        for _ in range(depth):
            below = self._levels[-1]
            self._levels.append([
                hasher.hash_pair(below[i], below[i + 1])
                for i in range(0, len(below), 2)
            ])

        logger.debug(f"Built Merkle tree of depth {depth} over {expected} leaves")

    def __len__(self):
        return len(self._levels[0])

    def __getitem__(self, index: int) -> Bits:
        return list(self._levels[0][index])

    @property
    def root(self) -> Bits:
        return list(self._levels[-1][0])

    def path(self, index: int) -> MerklePath:
        """Inclusion path for the leaf at ``index``"""
        if index < 0 or index >= len(self):
            raise MerkleError(
                f"Index {index} out of bounds for depth {self.depth}")

        copath = []
        position = index
        for level in range(self.depth):
            copath.append(tuple(self._levels[level][position ^ 1]))
            position >>= 1
        return MerklePath(address=index, copath=tuple(copath))
