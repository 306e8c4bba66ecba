"""Jinja2 rendering for generated configuration blocks."""
from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateError

from piprov.core.errors import ProvisionError

_env = Environment(
    loader=BaseLoader(),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
)


def render(template: str, **context) -> str:
    """Render a template string.

    Raises:
        ProvisionError: If the template is invalid or a variable is missing
    """
    try:
        return _env.from_string(template).render(**context)
    except TemplateError as e:
        raise ProvisionError(f"Failed to render configuration template: {e}")
