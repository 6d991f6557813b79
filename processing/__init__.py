"""Scoring and evaluation of scraped signals."""

from processing.llm_utils import LLMError, MistralLLM
from processing.prefilter import Prefilter, prefilter_signals, rejection_reason
from processing.velocity import (
    calculate_dynamic_baseline,
    calculate_velocity,
    classify_velocity_tier,
    filter_by_thresholds,
    get_top_signals,
    group_by_tier,
    score_signals,
    score_signals_with_preset,
    summarize_velocity,
)
from processing.viability import (
    ViabilityEvaluator,
    extract_json_object,
    filter_for_evaluation,
    parse_evaluation,
)

__all__ = [
    "calculate_velocity",
    "classify_velocity_tier",
    "score_signals",
    "score_signals_with_preset",
    "filter_by_thresholds",
    "calculate_dynamic_baseline",
    "get_top_signals",
    "group_by_tier",
    "summarize_velocity",
    "Prefilter",
    "prefilter_signals",
    "rejection_reason",
    "MistralLLM",
    "LLMError",
    "ViabilityEvaluator",
    "extract_json_object",
    "parse_evaluation",
    "filter_for_evaluation",
]
