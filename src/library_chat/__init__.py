"""
library-chat: Real-time client for the Library Smart Chatbot.

Keeps one websocket channel to the chat backend, tracks the conversation
log and connection state, and persists the log to a tab-scoped storage slot.
"""

__version__ = "0.1.0"
