"""Utility functions for working with OpenAI SDK APIs (Chat Completions API, Embeddings API, etc.)."""

from typing import Any, Dict, Optional

LATEX_PROMPT = """EXTREMELY IMPORTANT: If rendering LaTeX, you MUST use dollar signs ($) as delimiters and NOT backslash brackets. Backslash delimiters do not render for the student.

Here is an example of valid LaTeX using DOLLAR SIGNS ($):
- $$\\int f(x) \\,dx = \\frac{1}{4}x^4 + \\frac{5}{3}x^3 + C$$

Here is an example of INVALID LaTeX which uses backslash brackets:
   \\[
   w = w - \\eta \\nabla L(w; x_i, y_i)
   \\]

This LaTeX should instead look like:
   $$w = w - \\eta \\nabla L(w; x_i, y_i)$$
"""


def extract_text_from_response(response) -> str:
    """
    Extract text content from an OpenAI Chat Completions API response.

    Args:
        response: The response object from OpenAI SDK chat.completions.create()

    Returns:
        The extracted text string, or empty string if not found
    """
    if not getattr(response, "choices", None):
        return ""

    message = getattr(response.choices[0], "message", None)
    if message is None or not getattr(message, "content", None):
        return ""

    return message.content


def extract_delta_text(chunk) -> str:
    """Extract the text delta from a streamed chat completion chunk."""
    if not getattr(chunk, "choices", None):
        return ""
    delta = getattr(chunk.choices[0], "delta", None)
    return getattr(delta, "content", None) or ""


def is_authentication_error(error: Exception) -> bool:
    """Checks if the error is related to authentication/invalid API key."""
    error_str = str(error).lower()
    auth_indicators = ["authentication", "unauthorized", "invalid api key", "401"]
    return any(indicator in error_str for indicator in auth_indicators)


def build_image_message(
    base64_encoding: str, prompt: Optional[str] = None
) -> Dict[str, Any]:
    """User turn carrying a slide image, optionally preceded by an instruction."""
    content = []
    if prompt:
        content.append({"type": "text", "text": prompt})
    content.append(
        {
            "type": "image_url",
            "image_url": {"url": f"data:image/png;base64,{base64_encoding}"},
        }
    )
    return {"role": "user", "content": content}


def build_text_message(role: str, text: str) -> Dict[str, Any]:
    return {"role": role, "content": [{"type": "text", "text": text}]}
