"""
aether - natural-language to shell command overlay.

One completion contract, several interchangeable LLM backends
(OpenAI, Anthropic, Gemini, Ollama) plus a deterministic mock.
"""

__version__ = "0.1.0"
