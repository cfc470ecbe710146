"""
History - Validated, append-only log of observed rounds.

A round is a tuple of K outcomes. Entries are (timestamp, outcomes) pairs
in chronological order, most recent last. The log is only ever appended
to, truncated from the end (undo), cleared, or trimmed from the front when
it grows past MAX_HISTORY.
"""

import re
import time
from collections import namedtuple

import sys
sys.path.insert(0, '.')
from config import DEFAULT_CONFIG


class InvalidObservationError(ValueError):
    """Raw input that cannot be turned into a valid round."""


HistoryEntry = namedtuple('HistoryEntry', ['ts', 'outcomes'])

_INVISIBLE = re.compile('[\u200b-\u200d\ufeff]')
_PUNCTUATION = re.compile(r'[^\w\s]')


def _aliases(alphabet):
    """Single-letter shortcuts, only when the alphabet's initials are unique."""
    initials = [o[0].upper() for o in alphabet]
    if len(set(initials)) != len(initials):
        return {}
    return {initial: outcome for initial, outcome in zip(initials, alphabet)}


def normalize_outcome_text(raw, alphabet=DEFAULT_CONFIG.alphabet):
    """Turn messy display text into an alphabet member, or None.

    Strips NBSP / zero-width characters and punctuation, upper-cases, then
    looks for a whole-word match. A lone initial ('r') is accepted when
    initials are unambiguous.
    """
    if raw is None:
        return None
    text = str(raw).replace('\u00a0', ' ')
    text = _INVISIBLE.sub('', text).strip().upper()
    text = _PUNCTUATION.sub(' ', text)
    text = ' '.join(text.split())
    if not text:
        return None

    upper = {o.upper(): o for o in alphabet}
    if text in upper:
        return upper[text]
    for word in text.split():
        if word in upper:
            return upper[word]

    aliases = _aliases(alphabet)
    if text in aliases:
        return aliases[text]
    return None


def parse_round(raw, config=DEFAULT_CONFIG):
    """Parse 'R,B,R,B,G' / 'red black' / ['RED'] into a validated round tuple."""
    if raw is None:
        raise InvalidObservationError("No outcomes provided.")
    if isinstance(raw, str):
        tokens = [t for t in re.split(r'[\s,;]+', raw.strip()) if t]
    else:
        tokens = [str(t) for t in raw]

    if len(tokens) != config.round_width:
        raise InvalidObservationError(
            f"Need exactly {config.round_width} outcome(s) "
            f"({'/'.join(config.alphabet)}), got {len(tokens)}."
        )

    outcomes = []
    for token in tokens:
        outcome = normalize_outcome_text(token, config.alphabet)
        if outcome is None:
            raise InvalidObservationError(
                f"'{token}' is not one of {', '.join(config.alphabet)}."
            )
        outcomes.append(outcome)
    return tuple(outcomes)


class History:
    def __init__(self, config=DEFAULT_CONFIG, entries=()):
        self.config = config
        self._entries = []
        for entry in entries:
            self.append(entry.outcomes, ts=entry.ts)

    def _validate(self, outcomes):
        if isinstance(outcomes, str):
            outcomes = (outcomes,)
        outcomes = tuple(outcomes)
        if len(outcomes) != self.config.round_width:
            raise InvalidObservationError(
                f"Round must have {self.config.round_width} outcome(s), got {len(outcomes)}."
            )
        for o in outcomes:
            if o not in self.config.alphabet:
                raise InvalidObservationError(
                    f"'{o}' is not one of {', '.join(self.config.alphabet)}."
                )
        return outcomes

    def append(self, outcomes, ts=None, dedupe_window=None):
        """Add one validated round. Returns False when skipped as a fast duplicate."""
        outcomes = self._validate(outcomes)
        ts = time.time() if ts is None else float(ts)

        if dedupe_window and self._entries:
            last = self._entries[-1]
            if last.outcomes == outcomes and (ts - last.ts) < dedupe_window:
                return False

        self._entries.append(HistoryEntry(ts, outcomes))
        overflow = len(self._entries) - self.config.max_history
        if overflow > 0:
            del self._entries[:overflow]
        return True

    def undo(self):
        """Remove and return the most recent entry (None when empty)."""
        if not self._entries:
            return None
        return self._entries.pop()

    def clear(self):
        self._entries = []

    @property
    def entries(self):
        return tuple(self._entries)

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    def __getitem__(self, item):
        return self._entries[item]

    def to_records(self):
        return [{'ts': entry.ts, 'outcomes': list(entry.outcomes)}
                for entry in self._entries]

    @classmethod
    def from_records(cls, records, config=DEFAULT_CONFIG):
        history = cls(config)
        for record in records:
            history.append(record['outcomes'], ts=record['ts'])
        return history
