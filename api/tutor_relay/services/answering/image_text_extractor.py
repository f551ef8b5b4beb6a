"""Text extraction from photographed questions.

``MockImageTextExtractor`` is a stand-in for a vision/OCR service: it picks a
canned question by file extension. Anything implementing
``ImageTextExtractor`` can replace it without touching the orchestrator, as
long as it keeps the contract of never raising and always returning text.
"""

import logging
import shutil
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

EXTRACTION_FAILED_TEXT = (
    "This appears to be an image with a question. A teacher will review it shortly."
)

CANNED_QUESTIONS = {
    ".jpg": "Find the derivative of f(x) = 3x² + 2x - 5 with respect to x.",
    ".jpeg": "Find the derivative of f(x) = 3x² + 2x - 5 with respect to x.",
    ".png": "If a circle has a radius of 5 cm, calculate its area and circumference.",
}
DEFAULT_CANNED_QUESTION = "Solve the following equation: 2x + 5 = 13"


@runtime_checkable
class ImageTextExtractor(Protocol):
    """Turns an image of a question into question text."""

    async def extract_text(self, image_path: str) -> str: ...


class MockImageTextExtractor:
    """Extension-keyed stand-in for a real recognition service.

    Args:
        debug_dir: Directory that receives a ``debug-<filename>`` copy of
            every processed image
    """

    def __init__(self, debug_dir: str) -> None:
        self.debug_dir = Path(debug_dir)
        logger.info("Mock image text extractor initialized")

    async def extract_text(self, image_path: str) -> str:
        try:
            logger.info(f"Processing image: {image_path}")
            source = Path(image_path)

            self.debug_dir.mkdir(parents=True, exist_ok=True)
            debug_path = self.debug_dir / f"debug-{source.name}"
            shutil.copyfile(source, debug_path)
            logger.info(f"Saved debug copy of image to: {debug_path}")

            extracted = CANNED_QUESTIONS.get(
                source.suffix.lower(), DEFAULT_CANNED_QUESTION
            )
            logger.info(f'Generated mock text from image: "{extracted}"')
            return extracted
        except Exception as e:
            logger.error(f"Error in mock image processing: {e}")
            return EXTRACTION_FAILED_TEXT
