# TenantSQL - Synonym Table
# =========================
"""
Synonym Table
=============
Maps colloquial words in a question to canonical parameter values:
1. Status words (done/finished -> completed)
2. Boolean words (yes/active/enabled -> True)

The table is pluggable: construct a SynonymTable with your own mappings, or
register extra entries at startup. Typos are tolerated through RapidFuzz
against the known synonym keys.

Used by: parameter_extractor.py
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from rapidfuzz import fuzz, process

logger = logging.getLogger(__name__)


# =============================================================================
# STATUS SYNONYMS
# =============================================================================
# canonical value -> words users type for it

STATUS_SYNONYMS: Dict[str, tuple] = {
    'completed': ('completed', 'complete', 'done', 'finished', 'closed', 'resolved'),
    'pending': ('pending', 'waiting', 'queued', 'not started', 'todo', 'to do'),
    'in_progress': ('in progress', 'in_progress', 'ongoing', 'started', 'running', 'active work'),
    'cancelled': ('cancelled', 'canceled', 'aborted', 'dropped', 'abandoned'),
    'failed': ('failed', 'error', 'errored', 'broken', 'unsuccessful'),
    'active': ('active', 'enabled', 'live', 'current'),
    'inactive': ('inactive', 'disabled', 'archived', 'dormant'),
}


# =============================================================================
# BOOLEAN WORDS
# =============================================================================

TRUE_WORDS = ('yes', 'y', 'true', '1', 'active', 'enabled', 'on')
FALSE_WORDS = ('no', 'n', 'false', '0', 'inactive', 'disabled', 'off')


@dataclass
class SynonymMatch:
    """A resolved synonym."""
    canonical: str      # Canonical value to bind
    matched_word: str   # Word found in the text
    score: float        # 0-100, 100 for exact


class SynonymTable:
    """
    Resolves free-text words to canonical values.

    Example:
        table = SynonymTable()
        table.resolve("done")          # -> SynonymMatch('completed', 'done', 100)
        table.find_in_text("show finished orders")
    """

    def __init__(self,
                 mappings: Optional[Dict[str, Iterable[str]]] = None,
                 fuzzy_threshold: float = 88.0):
        """
        Initialize synonym table.

        Args:
            mappings: canonical value -> synonyms (defaults to STATUS_SYNONYMS)
            fuzzy_threshold: Minimum RapidFuzz score for a typo match
        """
        self.fuzzy_threshold = fuzzy_threshold
        self._lookup: Dict[str, str] = {}
        for canonical, words in (mappings if mappings is not None else STATUS_SYNONYMS).items():
            self.register(canonical, words)

    def register(self, canonical: str, words: Iterable[str]):
        """Add synonyms for a canonical value (the canonical value maps to itself)."""
        self._lookup[canonical.lower()] = canonical
        for word in words:
            self._lookup[word.lower().strip()] = canonical

    @property
    def canonical_values(self) -> List[str]:
        return sorted(set(self._lookup.values()))

    def resolve(self, word: str, allowed: Optional[Iterable] = None) -> Optional[SynonymMatch]:
        """
        Resolve a single word or phrase.

        Args:
            word: Text to resolve
            allowed: Restrict results to these canonical values

        Returns:
            SynonymMatch or None
        """
        if not word:
            return None
        key = word.lower().strip()
        allowed_set = {str(a).lower() for a in allowed} if allowed is not None else None

        canonical = self._lookup.get(key)
        if canonical and (allowed_set is None or canonical.lower() in allowed_set):
            return SynonymMatch(canonical=canonical, matched_word=word, score=100.0)

        if allowed_set is not None and key in allowed_set:
            return SynonymMatch(canonical=self._allowed_original(key, allowed), matched_word=word, score=100.0)

        best = process.extractOne(key, list(self._lookup.keys()), scorer=fuzz.ratio,
                                  score_cutoff=self.fuzzy_threshold)
        if best:
            canonical = self._lookup[best[0]]
            if allowed_set is None or canonical.lower() in allowed_set:
                logger.debug(f"Fuzzy synonym '{word}' -> '{canonical}' ({best[1]:.0f})")
                return SynonymMatch(canonical=canonical, matched_word=word, score=float(best[1]))
        return None

    def find_in_text(self, text: str, allowed: Optional[Iterable] = None) -> Optional[SynonymMatch]:
        """
        Find the first synonym phrase that appears in a piece of text.

        Longer phrases win over shorter ones ("not started" before "started").
        """
        lowered = f" {text.lower()} "
        allowed_set = {str(a).lower() for a in allowed} if allowed is not None else None

        for word in sorted(self._lookup, key=len, reverse=True):
            if f" {word} " in lowered:
                canonical = self._lookup[word]
                if allowed_set is None or canonical.lower() in allowed_set:
                    return SynonymMatch(canonical=canonical, matched_word=word, score=100.0)

        if allowed_set is not None:
            for value in allowed:
                if f" {str(value).lower()} " in lowered:
                    return SynonymMatch(canonical=value, matched_word=str(value), score=100.0)
        return None

    @staticmethod
    def _allowed_original(key: str, allowed: Iterable):
        for value in allowed:
            if str(value).lower() == key:
                return value
        return key


def parse_boolean(word: str) -> Optional[bool]:
    """Map a yes/no style word to a bool, or None if unrecognized."""
    key = str(word).lower().strip()
    if key in TRUE_WORDS:
        return True
    if key in FALSE_WORDS:
        return False
    return None
