"""Merch viability evaluation of high-velocity signals via the LLM judge.

The judge is asked for a single JSON object. Replies are often wrapped in
markdown fences or prose, so the first balanced {...} block is extracted
and coerced field by field; a reply without usable JSON is treated as no
verdict rather than an error.
"""

import json
import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from data_models.evaluation import AudienceSize, ViabilityEvaluation
from data_models.settings import EvaluatorConfig
from data_models.signals import ScoredSignal, VelocityTier, tier_rank

logger = logging.getLogger(__name__)

EVALUATION_SYSTEM_PROMPT = """You are a merch opportunity analyst for Amazon Merch on Demand. Your job is to evaluate social media signals (Reddit posts, TikTok videos) and determine if they represent viable t-shirt design opportunities.

A GOOD merch opportunity has:
1. A clear, passionate audience (identity-based: "I'm a fishing dad", "I crochet")
2. Phrases or concepts that can be expressed on a t-shirt
3. Emotional resonance (humor, pride, identity, belonging)
4. No trademark/copyright issues

A BAD merch opportunity has:
- Generic topics without identity angle
- News/current events that will be stale
- Trademarked characters, brands, or IP
- Political/controversial content
- Content that's too niche with no searchable keywords

For each signal, provide:
1. Viability score (0-1) with reasoning
2. 3-5 potential t-shirt phrases (6 words max each)
3. Target audience description
4. Design style suggestions
5. Amazon safety assessment"""

RESPONSE_SCHEMA = """{
  "isViable": true/false,
  "viabilityScore": 0.0-1.0,
  "viabilityReason": "Brief explanation",
  "topic": "Main topic/theme",
  "phrases": ["Phrase 1", "Phrase 2", "Phrase 3"],
  "keywords": ["keyword1", "keyword2"],
  "audience": "Brief audience description",
  "audienceProfile": "Detailed audience profile (demographics, interests, buying motivation)",
  "audienceSize": "micro/niche/medium/large/massive",
  "amazonSafe": true/false,
  "amazonSafeNotes": "Any concerns or notes",
  "suggestedStyles": ["style1", "style2"],
  "colorHints": ["color1", "color2"],
  "moodKeywords": ["mood1", "mood2"],
  "designNotes": "Additional design guidance"
}"""


def build_evaluation_prompt(
    signal: ScoredSignal,
    community_context: str | None = None,
    content_chars: int = 500,
) -> str:
    """User prompt describing one signal and the expected JSON reply."""
    size = f" ({signal.community_size:,} members)" if signal.community_size else ""
    content = (signal.content or "")[:content_chars] or "N/A"
    context = f"\n**Community Context:** {community_context}\n" if community_context else ""

    return f"""Evaluate this social media signal for t-shirt merch potential:

**Platform:** {signal.platform}
**Community:** {signal.community}{size}
**Title:** {signal.title or 'N/A'}
**Content:** {content}
**Engagement:** {signal.upvotes} upvotes, {signal.comments} comments
**Velocity Score:** {signal.velocity_score:.2f} ({signal.velocity_tier})
{context}
Respond in this exact JSON format:
{RESPONSE_SCHEMA}"""


def extract_json_object(text: str) -> dict | None:
    """First balanced {...} block in text that parses as a JSON object.

    Braces inside JSON strings (and escaped quotes) are ignored while
    matching. Returns None when nothing parses.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = None
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break

        if end is None:
            start = text.find("{", start + 1)
            continue

        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)

    return None


def _field(data: dict, camel: str, snake: str) -> Any:
    return data[camel] if camel in data else data.get(snake)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _as_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(score):
        return 0.0
    return max(0.0, min(1.0, score))


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def _as_optional_str(value: Any) -> str | None:
    return str(value) if value else None


def _as_audience_size(value: Any) -> AudienceSize:
    try:
        return AudienceSize(str(value).strip().lower())
    except ValueError:
        return AudienceSize.MEDIUM


def parse_evaluation(text: str) -> ViabilityEvaluation | None:
    """Parse the judge's reply into a ViabilityEvaluation.

    Accepts camelCase (as requested in the prompt) or snake_case keys.

    Returns:
        ViabilityEvaluation, or None if no JSON object could be extracted
    """
    data = extract_json_object(text)
    if data is None:
        return None

    return ViabilityEvaluation(
        is_viable=_as_bool(_field(data, "isViable", "is_viable")),
        viability_score=_as_score(_field(data, "viabilityScore", "viability_score")),
        viability_reason=str(_field(data, "viabilityReason", "viability_reason") or ""),
        topic=str(data.get("topic") or ""),
        phrases=_as_str_list(data.get("phrases")),
        keywords=_as_str_list(data.get("keywords")),
        audience=str(data.get("audience") or ""),
        audience_profile=str(_field(data, "audienceProfile", "audience_profile") or ""),
        audience_size=_as_audience_size(_field(data, "audienceSize", "audience_size")),
        amazon_safe=_as_bool(_field(data, "amazonSafe", "amazon_safe")),
        amazon_safe_notes=_as_optional_str(_field(data, "amazonSafeNotes", "amazon_safe_notes")),
        suggested_styles=_as_str_list(_field(data, "suggestedStyles", "suggested_styles")),
        color_hints=_as_str_list(_field(data, "colorHints", "color_hints")),
        mood_keywords=_as_str_list(_field(data, "moodKeywords", "mood_keywords")),
        design_notes=_as_optional_str(_field(data, "designNotes", "design_notes")),
    )


def filter_for_evaluation(
    signals: list[ScoredSignal],
    min_tier: VelocityTier | str = VelocityTier.STEADY,
) -> list[ScoredSignal]:
    """Signals at or above min_tier."""
    limit = tier_rank(min_tier)
    return [s for s in signals if tier_rank(s.velocity_tier) <= limit]


class ViabilityEvaluator:
    """Sends signals to the LLM judge in paced, concurrent batches."""

    def __init__(
        self,
        llm,
        config: EvaluatorConfig | None = None,
        batch_size: int = 5,
        batch_delay_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize evaluator.

        Args:
            llm: Object with generate(prompt, system_prompt, ...) and is_configured()
            config: Prompt and generation settings
            batch_size: Signals evaluated concurrently per batch
            batch_delay_seconds: Pause between batches
            sleep: Sleep function used between batches
        """
        self.llm = llm
        self.config = config or EvaluatorConfig()
        self.batch_size = max(1, batch_size)
        self.batch_delay_seconds = batch_delay_seconds
        self._sleep = sleep

    def is_configured(self) -> bool:
        return self.llm.is_configured()

    def evaluate(
        self,
        signal: ScoredSignal,
        community_context: str | None = None,
    ) -> ViabilityEvaluation | None:
        """Evaluate one signal.

        Returns:
            ViabilityEvaluation, or None if the judge is unavailable, fails or
            replies without usable JSON
        """
        if not self.is_configured():
            logger.error("Evaluator LLM not configured")
            return None

        label = (signal.title or signal.external_id)[:50]
        logger.info(f"Evaluating signal: {label}")

        try:
            text = self.llm.generate(
                build_evaluation_prompt(signal, community_context, self.config.content_chars),
                system_prompt=EVALUATION_SYSTEM_PROMPT,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
        except Exception as e:
            logger.error(f"Failed to evaluate signal {signal.external_id}: {e}")
            return None

        evaluation = parse_evaluation(text)
        if evaluation is None:
            logger.warning(f"No JSON verdict in evaluator reply for {signal.external_id}")
        return evaluation

    def evaluate_batch(
        self,
        signals: list[ScoredSignal],
        community_context: str | None = None,
    ) -> dict[tuple[str, str], ViabilityEvaluation | None]:
        """Evaluate signals in fixed-size batches.

        Signals within a batch are evaluated concurrently; batches run one
        after another with a delay in between. One signal failing never
        affects the others.

        Returns:
            Verdict (or None) keyed by (platform, external_id)
        """
        results: dict[tuple[str, str], ViabilityEvaluation | None] = {}
        total_batches = math.ceil(len(signals) / self.batch_size)

        for index in range(total_batches):
            batch = signals[index * self.batch_size : (index + 1) * self.batch_size]
            logger.info(f"Evaluating batch {index + 1}/{total_batches} ({len(batch)} signals)")

            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                verdicts = list(pool.map(lambda s: self.evaluate(s, community_context), batch))

            for signal, verdict in zip(batch, verdicts):
                results[signal.key] = verdict

            if index < total_batches - 1 and self.batch_delay_seconds > 0:
                self._sleep(self.batch_delay_seconds)

        return results
