"""
Pre-filter tests: deterministic rejection before any evaluator call.
"""

import pytest

from conftest import make_signal
from data_models.settings import PrefilterConfig
from processing.prefilter import (
    REASON_NEWS,
    REASON_POLITICAL,
    REASON_TITLE,
    REASON_TRADEMARK,
    Prefilter,
    prefilter_signals,
    rejection_reason,
)


class TestRejectionReason:
    @pytest.mark.parametrize(
        "title,content,reason",
        [
            ("Made a Disney castle out of yarn", "", REASON_TRADEMARK),
            ("Crocheted blanket for my grandson", "It has Pokemon on it", REASON_TRADEMARK),
            ("Knitting through the election stress", "", REASON_POLITICAL),
            ("Breaking news: yarn prices doubled", "", REASON_NEWS),
            ("Hi", "", REASON_TITLE),
            ("", "A long body without any title at all", REASON_TITLE),
        ],
    )
    def test_rejected(self, title, content, reason):
        assert rejection_reason(make_signal(title=title, content=content)) == reason

    def test_passes_clean_signal(self):
        signal = make_signal(title="My grandma taught me to crochet at 80", content="So proud of her")

        assert rejection_reason(signal) is None

    def test_terms_match_whole_words_only(self):
        signal = make_signal(title="Weekend trip to Appleton for the yarn fair", content="")

        assert rejection_reason(signal) is None

    def test_matching_is_case_insensitive(self):
        assert rejection_reason(make_signal(title="NIKE inspired running club shirt")) == REASON_TRADEMARK

    def test_trademark_checked_before_politics(self):
        signal = make_signal(title="Disney themed election party ideas")

        assert rejection_reason(signal) == REASON_TRADEMARK

    def test_custom_terms(self):
        config = PrefilterConfig(trademark_terms=["lego"], political_terms=[], news_phrases=[], min_title_length=3)

        assert rejection_reason(make_signal(title="Lego knitting"), config) == REASON_TRADEMARK
        assert rejection_reason(make_signal(title="Disney"), config) is None


class TestSplit:
    def test_split_preserves_order(self):
        signals = [
            make_signal("a", title="Proud fishing dad moment right here"),
            make_signal("b", title="Marvel fan art"),
            make_signal("c", title="Nurses know the 3am coffee struggle"),
        ]

        passed, rejected = Prefilter().split(signals)

        assert [s.external_id for s in passed] == ["a", "c"]
        assert [(s.external_id, reason) for s, reason in rejected] == [("b", REASON_TRADEMARK)]
        assert prefilter_signals(signals) == passed
