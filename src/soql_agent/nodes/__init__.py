"""LangGraph nodes of the healing loop."""
