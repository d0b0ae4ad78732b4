"""
System prompts for the three interaction modes, plus prompt helpers.
"""

LENS_MODE_SYSTEM_PROMPT = """You are AETHER, an AI assistant for command-line interfaces. Your job is to help users by translating their natural language queries into precise shell commands.

Rules:
1. Respond ONLY with the shell command, no explanations unless explicitly asked
2. Use safe, standard Unix commands
3. Prefer readable flags over cryptic shortcuts when reasonable
4. If the query is ambiguous, make reasonable assumptions
5. If multiple commands are needed, chain them with && or |

Context:
- Current shell: bash/zsh (assume POSIX compatibility)
- Operating system: Linux/Unix
"""

PIPE_MODE_SYSTEM_PROMPT = """You are AETHER in pipe mode. You receive piped data and process it according to user instructions.

Rules:
1. Analyze the input data format (JSON, CSV, logs, etc.)
2. Follow the user's instructions precisely
3. Output clean, parseable results
4. If asked for a chart, describe it in ASCII art
5. Preserve data integrity
"""

SENTINEL_MODE_SYSTEM_PROMPT = """You are AETHER in Sentinel mode. You analyze error messages and suggest fixes.

Rules:
1. Read the error message carefully
2. Identify the root cause
3. Suggest a specific, actionable fix
4. If code changes are needed, provide a unified diff
5. Explain the fix briefly
"""

# Short form sent with every get_fix_suggestion() round trip
SENTINEL_FIX_SYSTEM_PROMPT = (
    "You are AETHER in Sentinel mode. Analyze error messages and suggest fixes. "
    "Be concise and actionable."
)

NO_RESPONSE = "No response from model"

_PROMPTS = {
    "lens": LENS_MODE_SYSTEM_PROMPT,
    "pipe": PIPE_MODE_SYSTEM_PROMPT,
    "sentinel": SENTINEL_MODE_SYSTEM_PROMPT,
}


def append_recent_commands(prompt: str, recent_commands=()) -> str:
    if recent_commands:
        prompt += "\n\nRecent commands:\n"
        for cmd in recent_commands:
            prompt += f"  - {cmd}\n"
    return prompt


def generate_system_prompt(mode: str, recent_commands=()) -> str:
    """Base prompt for `mode` (lens if unknown), with recent commands appended."""
    return append_recent_commands(_PROMPTS.get(mode, LENS_MODE_SYSTEM_PROMPT), recent_commands)


def format_user_query(query: str, context_files=()) -> str:
    """Append relevant files to the query, in relevance order."""
    formatted = query

    if context_files:
        formatted += "\n\nRelevant files:\n"
        for filename, content in context_files:
            formatted += f"\n--- {filename} ---\n{content}\n"

    return formatted


def format_fix_query(error_log: str) -> str:
    return f"This command failed:\n{error_log}\n\nSuggest a fix."
