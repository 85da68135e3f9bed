"""
Checkpoint name normalization and alias resolution.

Passenger apps and drivers send free-text place names ("SM Dasma",
"sm dasmariñas", "Robinson Dasmarinas"). Both booking and scan handling
resolve them through :class:`NameResolver` so variants are configured as
alias rows rather than code.
"""

import re
import unicodedata
from typing import Iterable, Optional, Sequence, Tuple

_NON_WORD = re.compile(r"[^0-9a-z]+")

# Shortest query accepted for a bare prefix match against a route's names
MIN_PREFIX_LENGTH = 3


def normalize_name(name: Optional[str]) -> str:
    """Lowercase, strip diacritics and punctuation, collapse whitespace."""
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFKD", name)
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_WORD.sub(" ", ascii_only.lower()).strip()


class NameResolver:
    """
    Maps raw names to a canonical key.

    Aliases are ``(prefix, canonical_name)`` pairs. The longest matching
    prefix wins, so "sm dasma" can be routed differently from "sm das".
    """

    def __init__(self, aliases: Iterable[Tuple[str, str]] = ()):
        pairs = [(normalize_name(prefix), normalize_name(canonical)) for prefix, canonical in aliases]
        self._aliases = sorted((p for p in pairs if p[0]), key=lambda p: len(p[0]), reverse=True)

    def canonical_key(self, name: Optional[str]) -> str:
        key = normalize_name(name)
        for prefix, canonical in self._aliases:
            if key.startswith(prefix):
                return canonical
        return key

    def same_place(self, a: Optional[str], b: Optional[str]) -> bool:
        key_a = self.canonical_key(a)
        return bool(key_a) and key_a == self.canonical_key(b)

    def match(self, checkpoints: Sequence, name: Optional[str]):
        """
        Find the checkpoint in ``checkpoints`` that ``name`` refers to.

        Tries the canonical key first, then a unique prefix of a checkpoint
        name. Returns None when nothing (or more than one) matches.
        """
        key = self.canonical_key(name)
        if not key:
            return None

        for checkpoint in checkpoints:
            if self.canonical_key(checkpoint.name) == key:
                return checkpoint

        if len(key) < MIN_PREFIX_LENGTH:
            return None
        prefixed = [cp for cp in checkpoints if self.canonical_key(cp.name).startswith(key)]
        if len(prefixed) == 1:
            return prefixed[0]
        return None
