# zfs_sampler/collector/guid_encoder.py - Compact GUID tokens
"""
Encodes 64-bit pool and dataset GUIDs as short printable tokens.

A token is the base64 rendering of the GUID's eight big-endian bytes:
eleven 6-bit symbols plus one '=' pad. '/' is replaced by '#' because
collectd uses '/' to separate identifier parts.
"""

import base64
import logging
from typing import Dict


GUID_MAX = 2 ** 64 - 1

ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+#'
ALTCHARS = b'+#'

# GUID 0 never names a real object
ZERO_GUID_TOKEN = 'AAAAAAAAAAA='


def encode_guid(guid: int) -> str:
    """
    Encode a 64-bit GUID as a 12-character token.

    Args:
        guid: Unsigned 64-bit identifier

    Returns:
        Token over ALPHABET ending in '='

    Raises:
        ValueError: if guid is outside the unsigned 64-bit range
    """
    if guid < 0 or guid > GUID_MAX:
        raise ValueError(f"GUID out of 64-bit range: {guid}")
    if guid == 0:
        return ZERO_GUID_TOKEN

    return base64.b64encode(guid.to_bytes(8, 'big'), altchars=ALTCHARS).decode('ascii')


class GuidEncoder:
    """
    Memoizing encoder owned by a single capture session.

    Encoding runs on every event, so tokens are cached for the session's
    lifetime. A new session starts with a new, empty encoder.
    """

    def __init__(self):
        self._cache: Dict[int, str] = {}
        self.hits = 0
        self.misses = 0

    def encode(self, guid: int) -> str:
        token = self._cache.get(guid)
        if token is not None:
            self.hits += 1
            return token

        token = encode_guid(guid)
        self._cache[guid] = token
        self.misses += 1
        return token

    def __len__(self) -> int:
        return len(self._cache)

    def clear(self):
        self._cache.clear()
        self.hits = 0
        self.misses = 0

    def get_stats(self) -> Dict:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache size, hits and misses
        """
        return {
            'cached': len(self._cache),
            'hits': self.hits,
            'misses': self.misses,
        }
