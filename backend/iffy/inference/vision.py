from __future__ import annotations

import base64
import json
from typing import Any, Dict, Optional

import openai
from pydantic import ValidationError

from ..config import settings
from ..exceptions import AnalysisError, QuotaExceededError
from ..logger import logger
from ..schemas import AnalysisResult
from .openai_client import get_async_client

USER_PROMPT = (
    "Look at this photo and answer in JSON with exactly these keys: "
    "is_person (true/false), description (a short description of the subject), "
    "estimated_age (estimated age as a whole number, 0 if not a person). "
    'Example: {"is_person": true, "description": "a cute child", "estimated_age": 6}'
)


def _image_data_url(image_bytes: bytes, content_type: str) -> str:
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{content_type or 'image/png'};base64,{encoded}"


def parse_analysis(content: Optional[str]) -> AnalysisResult:
    """Validate the model's JSON answer."""
    if not content:
        raise AnalysisError("Vision model returned an empty answer")
    try:
        data: Dict[str, Any] = json.loads(content)
    except json.JSONDecodeError as e:
        raise AnalysisError(f"Vision model returned invalid JSON: {e}")
    if not isinstance(data, dict):
        raise AnalysisError("Vision model returned a non-object answer")

    age = data.get("estimated_age", data.get("age", 0))
    try:
        data["estimated_age"] = max(0, int(round(float(age or 0))))
    except (TypeError, ValueError):
        raise AnalysisError(f"Vision model returned a non-numeric age: {age!r}")
    data.setdefault("description", data.get("desc", ""))

    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as e:
        raise AnalysisError(f"Vision model answer failed validation: {e}")


async def analyze_image(image_bytes: bytes, content_type: str, model: Optional[str] = None) -> AnalysisResult:
    """Classify the photo's subject: person or not, description, age."""
    model = model or settings.VISION_MODEL
    try:
        client = get_async_client()
        response = await client.chat.completions.create(
            model=model,
            response_format={"type": "json_object"},
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": _image_data_url(image_bytes, content_type)}},
                    ],
                }
            ],
        )
    except openai.RateLimitError as e:
        logger.error(f"Vision model rate limited: {e}")
        raise QuotaExceededError()
    except (openai.OpenAIError, RuntimeError) as e:
        logger.error(f"Vision model call failed: {e}")
        raise AnalysisError(f"Vision model call failed: {e}")

    if response.usage is not None:
        logger.info("Vision token usage", extra={"model": model, "total_tokens": response.usage.total_tokens})

    result = parse_analysis(response.choices[0].message.content)
    logger.info(
        "Image analysis completed",
        extra={"is_person": result.is_person, "estimated_age": result.estimated_age},
    )
    return result
