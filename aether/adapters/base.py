"""
CompletionProvider Protocol - the contract every LLM backend satisfies.

This is the WHAT (interface), not the HOW (implementation).
See http.py for the shared HTTP plumbing and the per-provider modules
for request mapping and wire dialects.
"""

from typing import AsyncIterator, Protocol, runtime_checkable

from aether.adapters.schema import CompletionRequest


@runtime_checkable
class CompletionProvider(Protocol):
    """
    Contract for completion backends.

    Implementations must provide:
    - Lazy streaming completion (stream_completion)
    - Single round-trip error diagnosis (get_fix_suggestion)
    - A static model identifier (model_name)

    The aggregator and the lens overlay depend on nothing else, so any
    object with these three members is a valid provider.
    """

    def stream_completion(self, request: CompletionRequest) -> AsyncIterator[str]:
        """
        Stream completion fragments for `request`.

        Returns immediately; network work happens as the iterator is
        pulled. Fragments arrive in wire order and must be concatenated
        in that order. Not restartable: call again for a new stream.
        Closing the iterator early is a cancellation, not an error.

        Raises (during iteration):
            ProviderConnectionError: Transport failure
            ProviderError: Non-success status, with status code and body
            DecodeError: Malformed frame after it was fully assembled
        """
        ...

    async def get_fix_suggestion(self, error_log: str) -> str:
        """
        Ask for a fix for a failed command (Sentinel mode).

        Single round trip, no streaming. Returns "No response from model"
        rather than failing when the provider returns no candidate.
        """
        ...

    def model_name(self) -> str:
        """Static model identifier; no I/O."""
        ...
