"""Conversation state: durable store, message index, fork resolution, thread registry."""

from forkpoint.conversations.fork import ForkPointResolver
from forkpoint.conversations.index import MessageIndex
from forkpoint.conversations.registry import ThreadRegistry
from forkpoint.conversations.store import ConversationStore

__all__ = ["ConversationStore", "ForkPointResolver", "MessageIndex", "ThreadRegistry"]
