"""Inbound-webhook-to-reply relay pipeline."""

from .generator import GeneratedReply, OpenAICompletionProvider, ReplyGenerator, ReplyRequest
from .handoff import HandoffService
from .orchestrator import RelayOrchestrator, RelayOutcome
from .resolver import BusinessResolver
from .store import ConversationStore

__all__ = [
    "BusinessResolver",
    "ConversationStore",
    "GeneratedReply",
    "HandoffService",
    "OpenAICompletionProvider",
    "RelayOrchestrator",
    "RelayOutcome",
    "ReplyGenerator",
    "ReplyRequest",
]
