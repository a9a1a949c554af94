"""Jinja2 rendering for files phpvm materialises on disk."""
from __future__ import annotations

import os
from collections.abc import Mapping
from importlib import resources
from pathlib import Path

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, StrictUndefined

BUILTIN_TEMPLATES = resources.files(__name__)


class TemplateEngine:
    """Render built-in templates, letting an override directory shadow them."""

    def __init__(self, search_paths: list[Path]) -> None:
        """Create an engine searching *search_paths* in order."""
        loaders = [FileSystemLoader(str(path)) for path in search_paths]
        self.environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Return an engine that prefers *override_dir* when it exists."""
        paths: list[Path] = []
        if override_dir is not None and override_dir.is_dir():
            paths.append(override_dir)
        paths.append(Path(str(BUILTIN_TEMPLATES)))
        return cls(paths)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context*."""
        template = self.environment.get_template(template_name)
        return template.render(**context)

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
    ) -> bool:
        """Render into *destination*; return ``False`` when content is unchanged."""
        content = self.render_to_string(template_name, context)
        if destination.exists() and destination.read_text(encoding="utf-8") == content:
            return False
        destination.parent.mkdir(parents=True, exist_ok=True)
        temp = destination.with_name(f".{destination.name}.tmp")
        temp.write_text(content, encoding="utf-8")
        os.chmod(temp, mode)
        temp.replace(destination)
        return True


__all__ = ["TemplateEngine"]
