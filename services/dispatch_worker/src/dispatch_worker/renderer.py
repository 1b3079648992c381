"""Jinja2 template rendering for notification content and vendor payloads."""

from typing import Any

from jinja2 import StrictUndefined
from jinja2.sandbox import SandboxedEnvironment

_html_env = SandboxedEnvironment(
    autoescape=True,
    undefined=StrictUndefined,
    keep_trailing_newline=False,
)
_text_env = SandboxedEnvironment(
    autoescape=False,
    undefined=StrictUndefined,
    keep_trailing_newline=False,
)


def render_template(
    template_str: str, context: dict[str, Any], *, html: bool = False
) -> str:
    """Render a Jinja2 template string with the given context.

    Uses SandboxedEnvironment to prevent SSTI and StrictUndefined to
    raise on missing variables. Only email HTML bodies are autoescaped;
    subjects, SMS text and vendor payload fields are plain text.
    """
    env = _html_env if html else _text_env
    str_context = {k: "" if v is None else str(v) for k, v in context.items()}
    return env.from_string(template_str).render(str_context)
