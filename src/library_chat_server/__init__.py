"""
library-chat-server: websocket backend for the Library Smart Chatbot.

Routes patron questions to a hosted LLM, which can search the catalog
(EBSCO), cancel room reservations (LibCal) and hand conversations off to
librarians as LibAnswers tickets.
"""

__version__ = "0.1.0"
