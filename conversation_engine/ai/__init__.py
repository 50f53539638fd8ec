"""AI layer: provider gateway, prompt templates, response parsing and the analysis service."""

from conversation_engine.ai.analysis import EmailAnalysisService
from conversation_engine.ai.gateway import AIGateway
from conversation_engine.ai.parser import KeywordResponseParser, ResponseParser, parse_category, parse_urgency
from conversation_engine.ai.prompts import PromptTemplateEngine, validate_prompts_config
from conversation_engine.ai.providers import (
    AnthropicProvider,
    OpenAIProvider,
    PydanticAIProvider,
    TextProvider,
    build_providers,
)

__all__ = [
    "EmailAnalysisService",
    "AIGateway",
    "KeywordResponseParser",
    "ResponseParser",
    "parse_category",
    "parse_urgency",
    "PromptTemplateEngine",
    "validate_prompts_config",
    "AnthropicProvider",
    "OpenAIProvider",
    "PydanticAIProvider",
    "TextProvider",
    "build_providers",
]
