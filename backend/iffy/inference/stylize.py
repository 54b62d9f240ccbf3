import base64
import io
from typing import Optional

import httpx

from ..config import settings
from ..logger import logger
from .openai_client import get_client


def style_prompt_for(is_person: bool, estimated_age: int, description: str) -> str:
    if is_person:
        return (
            f"make this person look like a cute cartoon character who is {estimated_age} years old, "
            "with a soft and playful illustration style"
        )
    return (
        f"make the subject described as '{description}' look like a cute cartoon character, "
        "with a soft and playful illustration style"
    )


def stylize_image(image_bytes: bytes, prompt: str, model: Optional[str] = None) -> bytes:
    """Run the image-edit model over a PNG and return the edited PNG bytes."""
    model = model or settings.IMAGE_EDIT_MODEL
    client = get_client()
    logger.info("Requesting image edit", extra={"model": model})
    result = client.images.edit(
        model=model,
        image=("original.png", io.BytesIO(image_bytes), "image/png"),
        prompt=prompt,
    )
    item = result.data[0]
    if item.b64_json:
        return base64.b64decode(item.b64_json)
    if item.url:
        response = httpx.get(item.url, timeout=60.0)
        response.raise_for_status()
        return response.content
    raise RuntimeError("Image edit returned neither image data nor URL")
