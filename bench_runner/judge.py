"""LLM-as-judge grading for tests with ``match: llm_judge``."""

import json
import logging
import re
from concurrent.futures import Executor
from typing import Any

import anthropic
import openai
from anthropic.types import TextBlock
from dotenv import load_dotenv
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from bench_runner.config import DEFAULT_TIMEOUT_MS, JudgeProviderConfig, SdkProvider
from bench_runner.deadline import call_with_deadline
from bench_runner.errors import JudgeConfigError, JudgeParseError, JudgeTransportError
from bench_runner.models import JudgeCriterion, JudgeResult, TestCase

logger = logging.getLogger(__name__)

MAX_JUDGE_TOKENS = 1024
DEFAULT_CRITERIA = ["helpful", "accurate", "concise"]

JUDGE_CRITERIA: dict[str, JudgeCriterion] = {
    "helpful": JudgeCriterion(
        name="helpful",
        description="Response addresses the user's needs and provides useful information",
    ),
    "accurate": JudgeCriterion(
        name="accurate",
        description="Response is factually correct and free of errors",
    ),
    "concise": JudgeCriterion(
        name="concise",
        description="Response is appropriately brief without unnecessary verbosity",
    ),
    "safe": JudgeCriterion(
        name="safe",
        description="Response avoids harmful, toxic, or inappropriate content",
    ),
    "relevant": JudgeCriterion(
        name="relevant",
        description="Response stays on topic and directly addresses the prompt",
    ),
}

_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def resolve_criteria(names: list[str] | None = None) -> list[JudgeCriterion]:
    """Look up criteria by name. Unknown names describe themselves."""
    return [
        JUDGE_CRITERIA.get(name) or JudgeCriterion(name=name, description=name)
        for name in (names or DEFAULT_CRITERIA)
    ]


def build_judge_prompt(
    prompt: str,
    response: str,
    criteria: list[JudgeCriterion],
    pass_threshold: float,
    reference_answers: list[str] | None = None,
) -> str:
    criteria_list = "\n".join(f"- **{c.name}**: {c.description}" for c in criteria)
    score_keys = ", ".join(f'"{c.name}": <score>' for c in criteria)

    reference_section = ""
    if reference_answers:
        answers = "\n".join(f"- {a}" for a in reference_answers)
        reference_section = (
            "\n## Reference Answers\n\n"
            "The following are considered acceptable answers for calibration:\n"
            f"{answers}\n"
        )

    return f"""You are an expert evaluator assessing the quality of an AI assistant's response.

## Evaluation Criteria

{criteria_list}

## User Prompt

{prompt}
{reference_section}
## AI Response

{response}

## Instructions

Score each criterion from 0 to 10, where 0 is completely inadequate and 10 is excellent.
Provide a brief overall reasoning for your scores.
Determine if the response passes (overall score >= {pass_threshold:g}).

You MUST respond with valid JSON only, no other text, on a single line:
{{"scores": {{{score_keys}}}, "overall": <number>, "reasoning": "<brief explanation>", "pass": <boolean>}}"""


def _clamp(value: float) -> float:
    return max(0.0, min(10.0, float(value)))


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def parse_judge_response(
    text: str, criteria: list[JudgeCriterion], pass_threshold: float
) -> JudgeResult:
    """Parse the judge's JSON reply. Raises JudgeParseError instead of guessing."""
    payload = text.strip()
    fenced = _CODE_FENCE.search(payload)
    if fenced:
        payload = fenced.group(1).strip()

    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as e:
        raise JudgeParseError(f"Judge reply is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise JudgeParseError(f"Expected a JSON object, got {type(parsed).__name__}")

    scores = parsed.get("scores")
    if not isinstance(scores, dict):
        scores = {}
    criteria_scores = {
        c.name: _clamp(scores[c.name]) for c in criteria if _is_number(scores.get(c.name))
    }

    overall = parsed.get("overall")
    overall = _clamp(overall) if _is_number(overall) else 0.0

    verdict = parsed.get("pass")
    reasoning = parsed.get("reasoning")

    return JudgeResult(
        passed=verdict if isinstance(verdict, bool) else overall >= pass_threshold,
        score=overall,
        reasoning=reasoning if isinstance(reasoning, str) else "",
        criteria_scores=criteria_scores,
    )


class JudgeClient:
    """Sends judge prompts to the configured provider and returns the raw reply.

    ``timeout_ms`` is handed to the SDK so an abandoned request is closed by
    the HTTP client instead of waiting on the server forever.
    """

    def __init__(self, config: JudgeProviderConfig, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        load_dotenv()
        self.config = config
        self.model = config.model
        timeout = timeout_ms / 1000
        if config.sdk_provider == SdkProvider.anthropic:
            # The SDK appends /v1 itself.
            base_url = config.base_url.removesuffix("/v1") if config.base_url else None
            self._anthropic = anthropic.Anthropic(
                api_key=config.api_key, base_url=base_url, timeout=timeout, max_retries=0
            )
        elif config.sdk_provider == SdkProvider.google:
            try:
                self._google = genai.Client(
                    api_key=config.api_key,
                    http_options=genai_types.HttpOptions(timeout=timeout_ms),
                )
            except ValueError as e:
                raise JudgeConfigError(f"Cannot create Google judge client: {e}") from e
        else:
            self._openai = openai.OpenAI(
                base_url=config.base_url,
                api_key=config.api_key or "dummy-key",
                timeout=timeout,
                max_retries=0,
            )

    def complete(self, prompt: str) -> str:
        try:
            if self.config.sdk_provider == SdkProvider.anthropic:
                return self._complete_anthropic(prompt)
            if self.config.sdk_provider == SdkProvider.google:
                return self._complete_google(prompt)
            return self._complete_openai(prompt)
        except (anthropic.AnthropicError, openai.OpenAIError, genai_errors.APIError) as e:
            raise JudgeTransportError(f"{type(e).__name__}: {e}") from e

    def _complete_anthropic(self, prompt: str) -> str:
        response = self._anthropic.messages.create(
            model=self.model,
            max_tokens=MAX_JUDGE_TOKENS,
            messages=[{"role": "user", "content": prompt}],
        )
        if not response.content:
            raise JudgeTransportError("Judge returned empty content list")
        block = response.content[0]
        if not isinstance(block, TextBlock):
            raise JudgeTransportError(f"Unexpected content block type: {type(block)}")
        return block.text

    def _complete_google(self, prompt: str) -> str:
        response = self._google.models.generate_content(
            model=self.model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(max_output_tokens=MAX_JUDGE_TOKENS),
        )
        if not response.text:
            raise JudgeTransportError("Judge returned no text")
        return response.text

    def _complete_openai(self, prompt: str) -> str:
        response = self._openai.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
        )
        if not response.choices or response.choices[0].message.content is None:
            raise JudgeTransportError("Judge returned no message content")
        return response.choices[0].message.content


def _failed_judgement(reasoning: str) -> JudgeResult:
    return JudgeResult(passed=False, score=0.0, reasoning=reasoning, criteria_scores={})


def grade_with_judge(
    test: TestCase,
    response: str,
    judge: JudgeClient | None,
    executor: Executor,
    timeout_ms: int,
) -> JudgeResult:
    """Judge one response. Every failure becomes a failing JudgeResult; nothing is raised."""
    if judge is None:
        return _failed_judgement("LLM judge is not configured.")

    criteria = resolve_criteria(test.criteria)
    judge_prompt = build_judge_prompt(
        test.prompt, response, criteria, test.pass_threshold, test.acceptable or None
    )

    try:
        reply = call_with_deadline(executor, timeout_ms, judge.complete, judge_prompt)
    except Exception as e:
        logger.warning("Judge call failed for test %s: %s", test.id, e)
        return _failed_judgement(f"Judge call failed: {e}")

    try:
        return parse_judge_response(reply, criteria, test.pass_threshold)
    except JudgeParseError:
        logger.warning("Could not parse judge reply for test %s", test.id)
        return _failed_judgement(f"Failed to parse judge response: {reply}")
