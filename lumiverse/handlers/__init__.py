"""Host lifecycle handlers and shared LLM request helpers.

Handlers listen to bus events and react asynchronously.
Each handler registers itself on specific event types during __init__.
"""


def build_anthropic_headers(api_key: str | None) -> dict[str, str]:
    """Build auth headers for Anthropic Messages API calls.

    OAuth tokens (``sk-ant-oat...``) go in a Bearer header with the oauth
    beta flag; plain API keys use ``x-api-key``.
    """
    headers: dict[str, str] = {"anthropic-version": "2023-06-01"}
    if api_key and "sk-ant-oat" in api_key:
        headers["Authorization"] = f"Bearer {api_key}"
        headers["anthropic-beta"] = "oauth-2025-04-20"
        headers["anthropic-dangerous-direct-browser-access"] = "true"
    else:
        headers["x-api-key"] = api_key or ""
    return headers


def build_openai_headers(api_key: str | None, provider: str = "openai") -> dict[str, str]:
    """Bearer auth for OpenAI-compatible chat completion endpoints."""
    headers: dict[str, str] = {"Authorization": f"Bearer {api_key or ''}"}
    if provider == "openrouter":
        headers["X-Title"] = "Lumiverse"
    return headers
