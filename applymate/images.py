"""Job detail extraction from screenshots of job postings."""

import logging

from .errors import (
    ImageExtractionError,
    ImageRateLimitError,
    InvalidImageError,
    RateLimitError,
    UpstreamError,
)
from .keys import CredentialPool
from .llm import GroqChatModel
from .prompts import IMAGE_EXTRACTION_PROMPT

logger = logging.getLogger(__name__)

# Flat usage estimate for one vision request
IMAGE_TOKEN_ESTIMATE = 2000


def to_data_url(data: str, mimetype: str = "image/png") -> str:
    """Wrap base64 image data so it can be passed where a URL is expected."""
    return f"data:{mimetype};base64,{data}"


def compose_image_message(extraction: str, caption: str = "") -> str:
    """Text routed through the agent in place of an inbound image."""
    return f"The job you are to save has been extracted: {extraction}\n\nURL: {caption}"


class ImageExtractor:
    """Turns an image of a job posting into a short text description."""

    def __init__(self, model: GroqChatModel, pool: CredentialPool):
        self.model = model
        self.pool = pool

    async def extract(self, image_url: str) -> str:
        if not image_url or not isinstance(image_url, str):
            raise InvalidImageError("Invalid image URL")

        message = {
            "role": "user",
            "content": [
                {"type": "text", "text": IMAGE_EXTRACTION_PROMPT},
                {"type": "image_url", "image_url": {"url": image_url}},
            ],
        }

        api_key, key_id = self.pool.select()
        try:
            response = await self.model.invoke([message], api_key)
        except RateLimitError as e:
            raise ImageRateLimitError(
                "Rate limit reached. Please wait a moment before sending another image."
            ) from e
        except UpstreamError as e:
            if "image" in str(e).lower():
                raise InvalidImageError(
                    "Unable to process this image. Please ensure it's a valid job posting screenshot."
                ) from e
            raise ImageExtractionError(f"Failed to analyze image: {e}") from e

        self.pool.record_usage(key_id, IMAGE_TOKEN_ESTIMATE)

        if not response.content.strip():
            raise ImageExtractionError("No response from vision model")

        logger.info(f"Extracted job details from image with {key_id}")
        return response.content.strip()
