"""
Content fingerprinting for deduplication
"""

import hashlib

ALGORITHM = "sha256"


class Fingerprinter:
    """
    Incremental SHA-256 digest.

    Feed chunks as they arrive with update(); the digest never needs a
    second pass over the data.
    """

    def __init__(self):
        self._hash = hashlib.new(ALGORITHM)
        self.bytes_seen = 0

    def update(self, chunk: bytes) -> None:
        self._hash.update(chunk)
        self.bytes_seen += len(chunk)

    def hexdigest(self) -> str:
        return self._hash.hexdigest()
