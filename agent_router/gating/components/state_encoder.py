"""
Task text → feature vector → discrete state key.

Deterministic feature hashing for the Q-learning router. The 64-dim vector
mixes keyword flags, length/word-count buckets, file-extension hints and
hashed bigrams; the state key quantizes it so near-identical task
descriptions collapse onto the same Q-table row.
"""

from typing import Dict, List

import numpy as np

from agent_router.gating.router_config import STATE_FEATURE_DIM

FEATURE_KEYWORDS: List[str] = [
    # Code-related
    "implement", "code", "write", "create", "build", "develop",
    # Testing-related
    "test", "spec", "coverage", "unit", "integration", "e2e",
    # Review-related
    "review", "check", "audit", "analyze", "inspect",
    # Architecture-related
    "architect", "design", "structure", "pattern", "system",
    # Research-related
    "research", "investigate", "explore", "find", "search",
    # Optimization-related
    "optimize", "performance", "speed", "memory", "improve",
    # Debug-related
    "debug", "fix", "bug", "error", "issue", "problem",
    # Documentation-related
    "document", "docs", "readme", "comment", "explain",
]

EXTENSION_HINTS: List[str] = [".ts", ".js", ".py", ".go", ".rs", ".java", ".md", ".json"]

# Slot offsets inside the 64-dim layout
_KEYWORD_SLOTS = 32
_LENGTH_OFFSET = 32
_WORDS_OFFSET = 40
_EXT_OFFSET = 48
_BIGRAM_OFFSET = 56
_BUCKETS = 8

_QUANT_THRESHOLD = 0.25

_MASK32 = 0xFFFFFFFF


def _rotl32(x: int, r: int) -> int:
    return ((x << r) | (x >> (32 - r))) & _MASK32


def murmurhash3_32(text: str, seed: int = 0xDEADBEEF) -> int:
    """32-bit MurmurHash3-style mix over the code points of ``text``."""
    h1 = seed
    c1 = 0xCC9E2D51
    c2 = 0x1B873593

    for ch in text:
        k1 = (ord(ch) * c1) & _MASK32
        k1 = _rotl32(k1, 15)
        k1 = (k1 * c2) & _MASK32
        h1 ^= k1
        h1 = _rotl32(h1, 13)
        h1 = (h1 * 5 + 0xE6546B64) & _MASK32

    h1 ^= len(text)
    h1 ^= h1 >> 16
    h1 = (h1 * 0x85EBCA6B) & _MASK32
    h1 ^= h1 >> 13
    h1 = (h1 * 0xC2B2AE35) & _MASK32
    h1 ^= h1 >> 16
    return h1


class TaskStateEncoder:
    """
    Pure text encoder with a bounded memo cache.

    The cache stops accepting new texts once ``cache_size`` entries are held;
    lookups for uncached texts still work, they are just recomputed.
    """

    def __init__(self, dim: int = STATE_FEATURE_DIM, cache_size: int = 1000):
        self.dim = dim
        self.cache_size = cache_size
        self._cache: Dict[str, np.ndarray] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def clear_cache(self):
        self._cache.clear()

    # -------------------- Features -------------------- #
    def encode(self, text: str) -> np.ndarray:
        """Return the L2-normalized, read-only feature vector for ``text``."""
        cached = self._cache.get(text)
        if cached is not None:
            return cached

        features = self._extract(text)
        features.setflags(write=False)
        if len(self._cache) < self.cache_size:
            self._cache[text] = features
        return features

    def _extract(self, text: str) -> np.ndarray:
        features = np.zeros(self.dim, dtype=np.float64)
        lower = text.lower()
        words = lower.split()

        for i, keyword in enumerate(FEATURE_KEYWORDS[:_KEYWORD_SLOTS]):
            if keyword in lower:
                features[i] = 1.0

        features[_LENGTH_OFFSET + min(len(text) // 50, _BUCKETS - 1)] = 1.0
        features[_WORDS_OFFSET + min(len(words) // 5, _BUCKETS - 1)] = 1.0

        for i, ext in enumerate(EXTENSION_HINTS):
            if ext in lower:
                features[_EXT_OFFSET + i] = 1.0

        for first, second in list(zip(words, words[1:]))[:_BUCKETS]:
            bucket = murmurhash3_32(f"{first}_{second}") % _BUCKETS
            features[_BIGRAM_OFFSET + bucket] += 0.25

        norm = float(np.sqrt(np.dot(features, features))) or 1.0
        features /= norm
        return features

    # -------------------- State keys -------------------- #
    def state_key(self, text: str) -> str:
        return self.vector_to_key(self.encode(text))

    @staticmethod
    def vector_to_key(features: np.ndarray) -> str:
        """
        Quantize into 4-bit groups and fold them into a 31-bit hash.
        Similar vectors share most groups, so they land on the same or
        nearby keys.
        """
        bits = (np.asarray(features) > _QUANT_THRESHOLD).astype(np.int64)
        pad = (-len(bits)) % 4
        if pad:
            bits = np.concatenate([bits, np.zeros(pad, dtype=np.int64)])
        codes = bits.reshape(-1, 4) @ np.array([1, 2, 4, 8], dtype=np.int64)

        # Intentional: the 31-bit fold keeps only the last ~8 groups (slots 32-63),
        # so keyword flags never reach the key; existing Q-table keys depend on it.
        h = 0
        for code in codes.tolist():
            h = ((h << 4) ^ code) & 0x7FFFFFFF
        return f"fstate_{np.base_repr(h, 36).lower()}"
