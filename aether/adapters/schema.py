from pydantic import BaseModel, ConfigDict


class CompletionRequest(BaseModel):
    """
    Standardized request object for every provider adapter.

    Built fresh per call and never mutated. `context_files` keeps relevance
    order (most relevant first); `history` is most-recent-first.
    """
    model_config = ConfigDict(frozen=True)

    system_prompt: str
    user_query: str
    context_files: tuple[tuple[str, str], ...] = ()
    history: tuple[str, ...] = ()


def render_context_files(context_files) -> str:
    """Render (name, content) pairs as fenced file blocks, in order."""
    return "\n\n".join(
        f"File: {name}\n```\n{content}\n```" for name, content in context_files
    )
