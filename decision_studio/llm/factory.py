"""Chat backend factory.

Resolves the configured model to a backend implementation.
"""

import logging
import os
from typing import Optional, Union

from decision_studio.llm.backends import AnthropicChatBackend, LocalChatBackend

logger = logging.getLogger(__name__)

DEFAULT_MODEL = os.environ.get("DECISION_MODEL", "claude-sonnet-4-6")


def get_backend(model_id: Optional[str] = None) -> Union[AnthropicChatBackend, LocalChatBackend]:
    """Get the chat backend for role analysis.

    Uses Anthropic when ANTHROPIC_API_KEY is set, otherwise the local
    rule-based backend.

    Raises:
        ValueError: If an explicit model_id is not a Claude model
    """
    model_id = model_id or DEFAULT_MODEL
    api_key = os.environ.get("ANTHROPIC_API_KEY")

    if not api_key:
        logger.warning(
            "ANTHROPIC_API_KEY not set - using local rule-based backend. "
            "Set ANTHROPIC_API_KEY to analyze decisions with Claude."
        )
        return LocalChatBackend()

    if not model_id.startswith("claude-"):
        raise ValueError(
            f"Unknown model: '{model_id}'. Expected a model ID starting with 'claude-'."
        )

    logger.info(f"Using Anthropic backend: model={model_id}")
    return AnthropicChatBackend(model_id=model_id, api_key=api_key)
