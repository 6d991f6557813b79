"""
Viability evaluator tests: JSON extraction, verdict coercion and batching.
"""

from types import SimpleNamespace

import pytest

from conftest import StubLLM, make_signal, verdict_json
from data_models.evaluation import AudienceSize
from data_models.settings import EvaluatorConfig
from data_models.signals import ScoredSignal, VelocityTier
from processing.llm_utils import LLMError, MistralLLM
from processing.viability import (
    EVALUATION_SYSTEM_PROMPT,
    ViabilityEvaluator,
    build_evaluation_prompt,
    extract_json_object,
    filter_for_evaluation,
    parse_evaluation,
)


def scored(external_id="s1", tier=VelocityTier.RISING, **overrides) -> ScoredSignal:
    data = make_signal(external_id, **overrides).model_dump()
    return ScoredSignal(**data, velocity_score=5.0, combined_score=5.0, velocity_tier=tier)


class TestExtractJsonObject:
    def test_fenced_block(self):
        assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_prose_around_object(self):
        assert extract_json_object('Sure! {"a": {"b": 2}} Hope that helps.') == {"a": {"b": 2}}

    def test_braces_inside_strings(self):
        assert extract_json_object('{"phrase": "Crochet {all} day", "q": "say \\"hi}\\""}') == {
            "phrase": "Crochet {all} day",
            "q": 'say "hi}"',
        }

    def test_skips_unbalanced_prefix(self):
        assert extract_json_object('Note { this is broken {"ok": true}') == {"ok": True}

    def test_skips_invalid_json_block(self):
        assert extract_json_object("{not json} then {\"ok\": 1}") == {"ok": 1}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{unclosed"])
    def test_nothing_usable(self, text):
        assert extract_json_object(text) is None


class TestParseEvaluation:
    def test_camel_case_reply(self):
        evaluation = parse_evaluation(verdict_json())

        assert evaluation.is_viable is True
        assert evaluation.viability_score == 0.85
        assert evaluation.topic == "Crochet grandpa"
        assert evaluation.phrases == ["Real Men Crochet", "Hooked On Yarn"]
        assert evaluation.audience_size == AudienceSize.NICHE.value
        assert evaluation.amazon_safe is True
        assert evaluation.amazon_safe_notes is None
        assert evaluation.design_notes == "Yarn ball icon"

    def test_snake_case_reply(self):
        evaluation = parse_evaluation('{"is_viable": true, "viability_score": 0.7, "amazon_safe": true}')

        assert evaluation.is_viable is True
        assert evaluation.viability_score == 0.7
        assert evaluation.amazon_safe is True

    def test_coercion(self):
        evaluation = parse_evaluation(
            '{"isViable": "false", "viabilityScore": "1.5", "phrases": "not a list", '
            '"audienceSize": "HUGE", "amazonSafe": "yes"}'
        )

        assert evaluation.is_viable is False
        assert evaluation.viability_score == 1.0
        assert evaluation.phrases == []
        assert evaluation.audience_size == AudienceSize.MEDIUM.value
        assert evaluation.amazon_safe is True

    def test_unparseable_score_is_zero(self):
        assert parse_evaluation('{"isViable": true, "viabilityScore": "high"}').viability_score == 0.0

    def test_no_json_is_no_verdict(self):
        assert parse_evaluation("I cannot evaluate this.") is None


class TestPrompt:
    def test_prompt_describes_signal(self):
        signal = scored(community_size=12345, content="x" * 800)

        prompt = build_evaluation_prompt(signal, community_context="Crafters who love yarn", content_chars=100)

        assert "**Community:** crochet (12,345 members)" in prompt
        assert "x" * 100 in prompt
        assert "x" * 101 not in prompt
        assert "Crafters who love yarn" in prompt
        assert '"isViable"' in prompt
        assert "(rising)" in prompt

    def test_filter_for_evaluation(self):
        signals = [scored("a", VelocityTier.EXPLODING), scored("b", VelocityTier.STEADY), scored("c", VelocityTier.NORMAL)]

        assert [s.external_id for s in filter_for_evaluation(signals)] == ["a", "b"]
        assert [s.external_id for s in filter_for_evaluation(signals, VelocityTier.RISING)] == ["a"]


class TestViabilityEvaluator:
    def test_evaluate(self):
        llm = StubLLM(verdict_json())
        evaluator = ViabilityEvaluator(llm, EvaluatorConfig(api_key="k"))

        evaluation = evaluator.evaluate(scored())

        assert evaluation.is_viable is True
        assert len(llm.prompts) == 1

    def test_unconfigured_judge_is_not_called(self):
        llm = StubLLM(verdict_json(), configured=False)
        evaluator = ViabilityEvaluator(llm)

        assert evaluator.evaluate(scored()) is None
        assert llm.prompts == []

    def test_judge_failure_is_no_verdict(self):
        evaluator = ViabilityEvaluator(StubLLM(LLMError("boom")))

        assert evaluator.evaluate(scored()) is None

    def test_batches_are_paced(self):
        sleeps = []
        llm = StubLLM(verdict_json())
        evaluator = ViabilityEvaluator(llm, batch_size=3, batch_delay_seconds=0.25, sleep=sleeps.append)
        signals = [scored(f"s{i}") for i in range(7)]

        results = evaluator.evaluate_batch(signals)

        assert len(results) == 7
        assert all(results[s.key] is not None for s in signals)
        assert len(llm.prompts) == 7
        # 3 batches, pause between them but not after the last
        assert sleeps == [0.25, 0.25]

    def test_one_failure_does_not_affect_others(self):
        def reply(prompt):
            if "Cursed" in prompt:
                return RuntimeError("judge crashed")
            return verdict_json()

        evaluator = ViabilityEvaluator(StubLLM(reply), batch_size=5)
        good = scored("good")
        bad = scored("bad", title="Cursed granny square")

        results = evaluator.evaluate_batch([good, bad])

        assert results[good.key].is_viable is True
        assert results[bad.key] is None


class TestMistralLLM:
    def test_unconfigured_raises(self):
        with pytest.raises(LLMError):
            MistralLLM(EvaluatorConfig()).generate("hello")

    def test_rate_limit_is_retried(self, monkeypatch):
        monkeypatch.setattr("processing.llm_utils.time.sleep", lambda seconds: None)
        calls = []

        def complete(**kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                raise Exception("Status 429: rate limit exceeded")
            return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="ok"))])

        llm = MistralLLM(EvaluatorConfig(api_key="k", base_delay_seconds=0))
        llm._client = SimpleNamespace(chat=SimpleNamespace(complete=complete))

        assert llm.generate("hi", system_prompt=EVALUATION_SYSTEM_PROMPT) == "ok"
        assert len(calls) == 2
        assert calls[1]["messages"][0] == {"role": "system", "content": EVALUATION_SYSTEM_PROMPT}
        assert calls[1]["model"] == "mistral-small-latest"

    def test_rate_limit_exhausted(self, monkeypatch):
        monkeypatch.setattr("processing.llm_utils.time.sleep", lambda seconds: None)

        def complete(**kwargs):
            raise Exception("429 Too Many Requests")

        llm = MistralLLM(EvaluatorConfig(api_key="k", max_retries=2, base_delay_seconds=0))
        llm._client = SimpleNamespace(chat=SimpleNamespace(complete=complete))

        with pytest.raises(LLMError):
            llm.generate("hi")

    def test_other_errors_propagate(self):
        def complete(**kwargs):
            raise ValueError("bad request")

        llm = MistralLLM(EvaluatorConfig(api_key="k", base_delay_seconds=0))
        llm._client = SimpleNamespace(chat=SimpleNamespace(complete=complete))

        with pytest.raises(ValueError):
            llm.generate("hi")
