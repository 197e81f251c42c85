"""Conversation state, reference resolution and graph state."""
