"""Deterministic gate that rejects obviously unusable signals before any LLM call."""

import logging
import re

from data_models.settings import PrefilterConfig
from data_models.signals import RawSignal

logger = logging.getLogger(__name__)

REASON_TRADEMARK = "trademark"
REASON_POLITICAL = "political"
REASON_NEWS = "news"
REASON_TITLE = "title"


def _term_pattern(terms: list[str]) -> re.Pattern | None:
    if not terms:
        return None
    alternatives = "|".join(re.escape(term) for term in terms)
    return re.compile(rf"\b({alternatives})\b", re.IGNORECASE)


class Prefilter:
    """Compiled term patterns for one PrefilterConfig."""

    def __init__(self, config: PrefilterConfig | None = None):
        self.config = config or PrefilterConfig()
        self._checks = [
            (REASON_TRADEMARK, _term_pattern(self.config.trademark_terms)),
            (REASON_POLITICAL, _term_pattern(self.config.political_terms)),
            (REASON_NEWS, _term_pattern(self.config.news_phrases)),
        ]

    def rejection_reason(self, signal: RawSignal) -> str | None:
        """Why a signal is rejected, or None if it passes."""
        combined = f"{signal.title or ''} {signal.content or ''}"
        for reason, pattern in self._checks:
            if pattern is not None and pattern.search(combined):
                return reason
        if not signal.title or len(signal.title) < self.config.min_title_length:
            return REASON_TITLE
        return None

    def split(self, signals: list) -> tuple[list, list[tuple]]:
        """Partition signals into (passed, [(rejected_signal, reason), ...])."""
        passed, rejected = [], []
        for signal in signals:
            reason = self.rejection_reason(signal)
            if reason:
                rejected.append((signal, reason))
            else:
                passed.append(signal)
        if rejected:
            logger.info(f"Pre-filter rejected {len(rejected)}/{len(signals)} signals")
        return passed, rejected


def rejection_reason(signal: RawSignal, config: PrefilterConfig | None = None) -> str | None:
    """Why a signal is rejected, or None if it passes."""
    return Prefilter(config).rejection_reason(signal)


def prefilter_signals(signals: list, config: PrefilterConfig | None = None) -> list:
    """Signals that pass the pre-filter, in their original order."""
    passed, _ = Prefilter(config).split(signals)
    return passed
