from waitroom.models.conversation import Conversation, Message, MessageRole, Summary, utcnow

__all__ = ["Conversation", "Message", "MessageRole", "Summary", "utcnow"]
