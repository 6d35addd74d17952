from pathlib import Path
from typing import Any, Mapping

from jinja2 import Environment, StrictUndefined, TemplateError

from rescueboot.errors import TerminalConfigurationError


class TemplateRenderer:
    def __init__(self):
        self.env = Environment(
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def render(self, template_text: str, context: Mapping[str, Any]) -> str:
        try:
            tmpl = self.env.from_string(template_text)
            return tmpl.render(**context)
        except TemplateError as e:
            raise TerminalConfigurationError(f"template rendering failed: {e}") from e

    def render_file(self, path: Path, context: Mapping[str, Any]) -> str:
        return self.render(Path(path).read_text(encoding="utf-8"), context)
