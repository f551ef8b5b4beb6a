"""Answer drafting: AI answer generation and image text extraction."""

from tutor_relay.services.answering.answer_generator import AnswerGenerator
from tutor_relay.services.answering.image_text_extractor import (
    ImageTextExtractor,
    MockImageTextExtractor,
)

__all__ = ["AnswerGenerator", "ImageTextExtractor", "MockImageTextExtractor"]
