from typing import Protocol, runtime_checkable


@runtime_checkable
class TextGenerator(Protocol):
    """Protocol for a text-generation service."""

    async def complete(self, prompt: str) -> str:
        """Return the raw completion for a rendered prompt.

        The output is untrusted: it may be wrapped in code fences, prefixed with
        a sentinel or empty.
        """
        ...
