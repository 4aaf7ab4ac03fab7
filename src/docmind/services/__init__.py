"""Service layer orchestrations for DocMind."""

from .conversation import (
    Conversation,
    ConversationBusyError,
    ConversationRunner,
    ConversationStateError,
    WORKSPACE_ACTIONS,
)
from .generation import (
    GeminiGenerator,
    GenerationBackend,
    GenerationConfig,
    GenerationError,
    TemplateGenerator,
    build_generator,
)
from .prompt import SYSTEM_INSTRUCTION, PromptBuilder, Turn
from .query import PreparedQuery, QueryService, ReplyStream

__all__ = [
    "Conversation",
    "ConversationBusyError",
    "ConversationRunner",
    "ConversationStateError",
    "GeminiGenerator",
    "GenerationBackend",
    "GenerationConfig",
    "GenerationError",
    "PreparedQuery",
    "PromptBuilder",
    "QueryService",
    "ReplyStream",
    "SYSTEM_INSTRUCTION",
    "TemplateGenerator",
    "Turn",
    "WORKSPACE_ACTIONS",
    "build_generator",
]
