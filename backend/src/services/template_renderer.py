"""
Template rendering for notification topics, URLs, headers and bodies.

Templates use Jinja2 syntax, not Handlebars: {{ name }} substitution plus
{% if %} and {% for %} blocks. Handlebars forms such as {{#if}} or {{{raw}}}
are not supported. Missing variables, including dotted lookups on them such
as {{ user.name }}, render as empty strings.

Compiled templates are cached by their exact source string, since the same
few configured templates are rendered on every usage event.
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional

from jinja2 import ChainableUndefined, Environment, Template

logger = logging.getLogger(__name__)


TEMPLATE_SYNTAX_HELP = (
    "Jinja2 template, e.g. {\"inUse\": true, \"name\": \"{{ name }}\"}. "
    "Handlebars forms such as {{#if}} and {{{raw}}} are not supported."
)


def has_template_markers(value: Optional[str]) -> bool:
    """Check if a string contains both {{ and }} and therefore needs rendering."""
    return bool(value) and "{{" in value and "}}" in value  # type: ignore[operator]


class TemplateRenderer:
    """
    Renders notification templates against a small event context.

    Attributes:
        env: Jinja2 environment used to compile templates
    """

    def __init__(self) -> None:
        # Payloads are JSON or plain text, not HTML
        self.env = Environment(
            autoescape=False,
            keep_trailing_newline=True,
            undefined=ChainableUndefined,
        )
        self._cache: Dict[str, Template] = {}

    def compile(self, template: str) -> Template:
        """Compile a template, reusing the cached version for an identical string."""
        compiled = self._cache.get(template)
        if compiled is None:
            compiled = self.env.from_string(template)
            self._cache[template] = compiled
        return compiled

    def render(self, template: str, context: Mapping[str, Any]) -> str:
        """
        Render a template with the given context.

        Args:
            template: Template source (e.g. "Resource {{name}} changed")
            context: Values available to the template

        Returns:
            Rendered string. Variables missing from the context render as ''.
        """
        return self.compile(template).render(**context)

    def render_if_templated(self, value: str, context: Mapping[str, Any]) -> str:
        """Render value only when it contains template markers, otherwise return it unchanged."""
        if has_template_markers(value):
            return self.render(value, context)
        return value

    def render_headers(self, headers_json: Optional[str], context: Mapping[str, Any]) -> Dict[str, str]:
        """
        Parse a JSON object of headers and render each value independently.

        Args:
            headers_json: JSON object text, e.g. '{"X-Resource": "{{id}}"}'
            context: Values available to the header templates

        Returns:
            Rendered headers. Malformed JSON or a non-object yields {}.
        """
        if not headers_json:
            return {}

        try:
            parsed = json.loads(headers_json)
        except (ValueError, TypeError) as e:
            logger.warning(f"Ignoring malformed webhook headers JSON: {e}")
            return {}

        if not isinstance(parsed, dict):
            logger.warning(f"Ignoring webhook headers that are not a JSON object: {type(parsed).__name__}")
            return {}

        rendered: Dict[str, str] = {}
        for name, value in parsed.items():
            rendered[str(name)] = self.render_if_templated(str(value), context)
        return rendered


# Shared renderer instance
template_renderer = TemplateRenderer()
