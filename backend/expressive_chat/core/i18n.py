"""
Localised strings used by the server: chat titles, fallback replies and the
model's system instruction.
"""

from typing import Literal

Language = Literal["en", "fr"]

SUPPORTED_LANGUAGES = ("en", "fr")

TRANSLATIONS = {
    "en": {
        "language_name": "English",
        "new_chat_title": "New Conversation",
        "image_chat_title": "Image Analysis",
        "image_default_prompt": "What is in this image?",
        "model_error": "I encountered an error. Please try again.",
    },
    "fr": {
        "language_name": "French",
        "new_chat_title": "Nouvelle discussion",
        "image_chat_title": "Analyse d'image",
        "image_default_prompt": "Qu'y a-t-il dans cette image ?",
        "model_error": "J'ai rencontré une erreur. Veuillez réessayer.",
    },
}

SYSTEM_INSTRUCTION_TEMPLATE = (
    "You are a helpful and expressive AI assistant. Keep your answers warm and "
    "professional, and structure them with markdown. When the user attaches an "
    "image, analyse it as part of your answer. Always respond in {language_name}."
)


def normalize_language(language: str = None, default: str = "en") -> str:
    """Return a supported language code, falling back to ``default``."""
    if language:
        code = language.strip().lower()[:2]
        if code in SUPPORTED_LANGUAGES:
            return code
    return default if default in SUPPORTED_LANGUAGES else "en"


def translate(language: str, key: str) -> str:
    return TRANSLATIONS[normalize_language(language)][key]


def system_instruction(language: str) -> str:
    return SYSTEM_INSTRUCTION_TEMPLATE.format(language_name=translate(language, "language_name"))
