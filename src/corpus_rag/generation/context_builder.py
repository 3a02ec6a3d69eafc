"""corpus_rag.generation.context_builder

Grounding-context templates and rendering utilities.

Retrieved matches are turned into a system message that a chat model can be
grounded on. Each match becomes a source block; the blocks are joined by
blank lines and embedded in the system template. Both parts are Jinja2
templates, so deployments can register their own wording.

Classes
-------
ContextTemplate
    A named pair of system and per-source templates.
ContextBuilder
    Registry of context templates and renderer.
"""
from __future__ import annotations

import json
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml
from jinja2 import Template

from corpus_rag.common.schemas import Match

DEFAULT_TEMPLATE_NAME = "default"

DEFAULT_SYSTEM_TEMPLATE = (
    "You are a helpful assistant. Use the following context to answer the "
    "user's question.\n\nContext:\n{{ context }}"
)
DEFAULT_SOURCE_TEMPLATE = "[Source {{ index }}: {{ document_name }}]\n{{ content }}"


class ContextTemplate:
    """A named grounding-context template.

    Parameters
    ----------
    name : str
        Name of the template.
    system : str, optional
        Jinja2 template for the system message. Receives ``context`` (the
        joined source blocks), ``question`` and ``matches``.
    source : str, optional
        Jinja2 template for one source block. Receives ``index`` (1-based),
        ``document_name``, ``content`` and ``similarity``.
    separator : str, optional
        String placed between source blocks. Defaults to a blank line.
    """

    def __init__(
            self,
            name: str,
            system: str = DEFAULT_SYSTEM_TEMPLATE,
            source: str = DEFAULT_SOURCE_TEMPLATE,
            separator: str = "\n\n",
        ):
        self.name = name
        self.system = system
        self.source = source
        self.separator = separator
        self._system_template = Template(system, keep_trailing_newline=True)
        self._source_template = Template(source, keep_trailing_newline=True)

    def render_sources(self, matches: Sequence[Match]) -> str:
        blocks = [
            self._source_template.render(
                index=i,
                document_name=match.document_name,
                content=match.content,
                similarity=match.similarity,
            )
            for i, match in enumerate(matches, start=1)
        ]
        return self.separator.join(blocks)

    def render(self, question: str, matches: Sequence[Match]) -> str:
        """Render the system message for ``question`` grounded on ``matches``."""
        context = self.render_sources(matches)
        return self._system_template.render(
            context=context,
            question=question,
            matches=list(matches),
        )


class ContextBuilder:
    """Registry and renderer for context templates.

    A builder always carries the ``"default"`` template; registering a
    template with that name replaces it.
    """

    def __init__(self, default_template: str = DEFAULT_TEMPLATE_NAME):
        self.templates: Dict[str, ContextTemplate] = {
            DEFAULT_TEMPLATE_NAME: ContextTemplate(DEFAULT_TEMPLATE_NAME)
        }
        self.default_template = default_template

    def register_from_dict(self, data: Dict[str, Any]) -> str:
        """Register a template from a mapping.

        Expected keys are ``"name"`` (required), ``"system"``, ``"source"``
        and ``"separator"``.

        Raises
        ------
        KeyError
            If ``"name"`` is missing.
        TypeError
            If a field has the wrong type.
        ValueError
            If ``"name"`` is empty.
        """
        if "name" not in data:
            raise KeyError("Template definition missing required key: 'name'")
        name = data["name"]
        if not isinstance(name, str):
            raise TypeError(f"Template 'name' must be a str, got {type(name)!r}")
        if not name.strip():
            raise ValueError("Template 'name' must be a non-empty string")

        kwargs: Dict[str, str] = {}
        for key in ("system", "source", "separator"):
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, str):
                raise TypeError(f"Template '{key}' must be a str, got {type(value)!r}")
            kwargs[key] = value

        if name in self.templates and name != DEFAULT_TEMPLATE_NAME:
            warnings.warn(f"Overwriting existing context template: {name}")
        self.templates[name] = ContextTemplate(name=name, **kwargs)
        return name

    def register_from_file(self, path: Union[Path, str], base_dir: Optional[Path] = None) -> List[str]:
        """Load and register templates from a JSON or YAML file.

        The file holds one template mapping or a list of them.

        Returns
        -------
        list[str]
            Names of templates registered from this file.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        ValueError
            If the file extension is not supported.
        """
        p = Path(path)
        if not p.is_absolute() and base_dir is not None:
            p = base_dir / p
        p = p.resolve()
        if not p.exists():
            raise FileNotFoundError(f"Context template file not found: {p}")

        suffix = p.suffix.lower()
        with p.open("r", encoding="utf-8") as f:
            if suffix == ".json":
                data = json.load(f)
            elif suffix in {".yaml", ".yml"}:
                data = yaml.safe_load(f)
            else:
                raise ValueError(f"Unsupported file type: {p.suffix}")

        if isinstance(data, dict):
            return [self.register_from_dict(data)]
        if isinstance(data, list):
            registered: List[str] = []
            for item in data:
                if not isinstance(item, dict):
                    raise TypeError(f"Template list items must be dicts, got {type(item)!r}")
                registered.append(self.register_from_dict(item))
            return registered
        raise TypeError(f"Template file must contain an object or list of objects, got {type(data)!r}")

    def list_templates(self) -> List[str]:
        return sorted(self.templates.keys())

    def get_template(self, name: str) -> ContextTemplate:
        if name not in self.templates:
            available = ", ".join(self.list_templates())
            raise KeyError(f"No template registered under name: {name}. Available: [{available}]")
        return self.templates[name]

    def render(self, question: str, matches: Sequence[Match], name: Optional[str] = None) -> str:
        """Render the grounding system message.

        Parameters
        ----------
        question : str
            User question the context is built for.
        matches : Sequence[Match]
            Retrieved matches, in the order they should be cited.
        name : str or None, optional
            Template name. Defaults to the builder's default template.

        Returns
        -------
        str
            The rendered system message.
        """
        return self.get_template(name or self.default_template).render(question, matches)


__all__ = [
    "ContextTemplate",
    "ContextBuilder",
    "DEFAULT_SYSTEM_TEMPLATE",
    "DEFAULT_SOURCE_TEMPLATE",
]
