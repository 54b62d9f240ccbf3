from __future__ import annotations

import json
from typing import Optional, Sequence

import openai
from pydantic import ValidationError

from ..config import settings
from ..exceptions import QuotaExceededError, RecommendationError
from ..logger import logger
from ..profiles import DeploymentProfile
from ..schemas import AnalysisResult, CatalogEntry, RecommendationResult
from .openai_client import get_async_client

SYSTEM_PROMPT = "You are a witty gift recommendation AI. Always answer in exactly the requested format."


def format_candidates(candidates: Sequence[CatalogEntry]) -> str:
    return "\n".join(
        f"{idx}. brand: {c.brand}, name: {c.name}, description: {c.description}"
        for idx, c in enumerate(candidates, start=1)
    )


def build_recommendation_prompt(
    candidates: Sequence[CatalogEntry],
    analysis: AnalysisResult,
    profile: DeploymentProfile,
) -> str:
    parts = [
        profile.prompt_intro,
        "",
        format_candidates(candidates),
        "",
        f"The photo analysis describes the subject as '{analysis.description}'.",
        f"They are about {analysis.estimated_age} years old.",
        "",
        f"Based on the candidate descriptions, carefully pick the single gift that best suits "
        f"a subject described as '{analysis.description}' and estimated to be about "
        f"{analysis.estimated_age} years old.",
    ]
    if profile.prompt_guidance:
        parts.append(profile.prompt_guidance)
    parts += [
        "In the humor field, write one short, witty sentence that playfully judges whether they "
        "are still young enough to get a Children's Day gift.",
        "In the reason field, explain the pick and tie it to Children's Day.",
        "The product_name MUST be copied exactly from a name in the candidate list.",
        "",
        "Answer only with JSON in this shape:",
        '{"product_name": "one name from the candidate list", "reason": "...", "humor": "..."}',
    ]
    return "\n".join(parts)


def parse_recommendation(content: Optional[str]) -> RecommendationResult:
    if not content:
        raise RecommendationError("Recommendation model returned an empty answer")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise RecommendationError(f"Recommendation model returned invalid JSON: {e}")
    if not isinstance(data, dict):
        raise RecommendationError("Recommendation model returned a non-object answer")
    try:
        return RecommendationResult(
            selected_product_name=data.get("product_name", ""),
            reason=data.get("reason", ""),
            humor_line=data.get("humor", ""),
        )
    except ValidationError as e:
        raise RecommendationError(f"Recommendation answer failed validation: {e}")


async def recommend_gift(prompt: str, model: Optional[str] = None) -> RecommendationResult:
    model = model or settings.RECOMMENDATION_MODEL
    try:
        client = get_async_client()
        response = await client.chat.completions.create(
            model=model,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )
    except openai.RateLimitError as e:
        logger.error(f"Recommendation model rate limited: {e}")
        raise QuotaExceededError()
    except (openai.OpenAIError, RuntimeError) as e:
        logger.error(f"Recommendation model call failed: {e}")
        raise RecommendationError(f"Recommendation model call failed: {e}")

    if response.usage is not None:
        logger.info("Recommendation token usage", extra={"model": model, "total_tokens": response.usage.total_tokens})

    return parse_recommendation(response.choices[0].message.content)
