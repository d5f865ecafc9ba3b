"""
AquilaMail Renderers — turn a template id + params into a message body.

``JinjaMailRenderer`` renders with Jinja2. A ``layout`` parameter selects an
optional wrapping template::

    renderer.render("welcome.html", {"name": "Asha", "layout": "base.html"})

renders ``welcome.html`` first and then ``base.html`` with the result available
as ``content``. A falsy ``layout`` (the pipeline passes ``False`` by default)
renders the template alone.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    FunctionLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    TemplateSyntaxError,
    Undefined,
    select_autoescape,
)
from markupsafe import Markup

from .config import import_string
from .faults import MailConfigFault, MailTemplateFault

logger = logging.getLogger("aquilamail.renderers")

LAYOUT_PARAM = "layout"
CONTENT_PARAM = "content"


@runtime_checkable
class IMailRenderer(Protocol):
    def render(self, template: str, params: Mapping[str, Any]) -> str:
        ...


class JinjaMailRenderer:
    """
    Jinja2-backed mail renderer.

    Args:
        env: A ready ``jinja2.Environment``. Built from *loader* when omitted.
        loader: Loader used to build the environment.
        strict: Raise on undefined variables instead of rendering them empty.
    """

    def __init__(
        self,
        env: Optional[Environment] = None,
        *,
        loader: Optional[BaseLoader] = None,
        strict: bool = False,
        autoescape: bool = True,
        filters: Optional[Dict[str, Callable[..., Any]]] = None,
        globals: Optional[Dict[str, Any]] = None,
    ):
        if env is None:
            env = Environment(
                loader=loader,
                autoescape=select_autoescape(
                    enabled_extensions=["html", "htm", "xml"],
                    default_for_string=True,
                ) if autoescape else False,
                undefined=StrictUndefined if strict else Undefined,
            )
        if filters:
            env.filters.update(filters)
        if globals:
            env.globals.update(globals)
        self.env = env

    def render(self, template: str, params: Mapping[str, Any]) -> str:
        context = dict(params)
        layout = context.get(LAYOUT_PARAM)
        content = self._render_one(template, context)
        if not layout:
            return content
        if not isinstance(layout, str):
            raise MailTemplateFault(
                f"Layout must be a template name, got {type(layout).__name__}",
                template_name=template,
            )
        logger.debug(f"Wrapping '{template}' in layout '{layout}'")
        return self._render_one(layout, {**context, CONTENT_PARAM: Markup(content)})

    def _render_one(self, name: str, context: Dict[str, Any]) -> str:
        try:
            return self.env.get_template(name).render(**context)
        except TemplateNotFound as e:
            raise MailTemplateFault(
                f"Template '{e.name or name}' not found", template_name=name,
            ) from e
        except TemplateSyntaxError as e:
            raise MailTemplateFault(
                f"Syntax error in template '{e.name or name}': {e.message}",
                template_name=e.name or name,
                line=e.lineno,
            ) from e
        except TemplateError as e:
            raise MailTemplateFault(
                f"Error rendering template '{name}': {e}", template_name=name,
            ) from e

    def __repr__(self) -> str:
        return f"JinjaMailRenderer(loader={self.env.loader!r})"


def _template_map_loader(template_map: Mapping[str, str]) -> FunctionLoader:
    """Loader resolving template ids through an explicit ``name -> file path`` map."""
    paths = {name: Path(path) for name, path in template_map.items()}

    def load(name: str):
        path = paths.get(name)
        if path is None or not path.is_file():
            return None
        source = path.read_text(encoding="utf-8")
        mtime = path.stat().st_mtime
        return source, str(path), lambda: path.is_file() and path.stat().st_mtime == mtime

    return FunctionLoader(load)


def create_mail_renderer(config: Optional[Mapping[str, Any]] = None) -> IMailRenderer:
    """
    Build the renderer described by *config* (the ``mail_options.renderer`` section).

    Keys:
        renderer: A renderer object, a class, or a dotted import path. When
            present it wins over everything else.
        template_map: ``{template_id: file_path}`` lookups, tried first.
        template_path_stack: Directories searched in order.
        strict / autoescape / filters / globals: passed to ``JinjaMailRenderer``.
    """
    config = dict(config or {})

    explicit = config.get("renderer")
    if explicit is not None:
        if isinstance(explicit, str):
            explicit = import_string(explicit)
        if isinstance(explicit, type):
            explicit = explicit()
        if not isinstance(explicit, IMailRenderer):
            raise MailConfigFault(
                f"Configured renderer {explicit!r} does not implement render(template, params)",
                config_key="renderer",
            )
        return explicit

    loaders: List[BaseLoader] = []
    template_map = config.get("template_map") or {}
    if template_map:
        loaders.append(_template_map_loader(template_map))
    path_stack = config.get("template_path_stack") or []
    if isinstance(path_stack, str):
        path_stack = [path_stack]
    if path_stack:
        loaders.append(FileSystemLoader([str(p) for p in path_stack]))

    logger.debug(
        f"Creating Jinja mail renderer (map={len(template_map)} entries, "
        f"paths={list(path_stack)})"
    )
    return JinjaMailRenderer(
        loader=ChoiceLoader(loaders),
        strict=bool(config.get("strict", False)),
        autoescape=bool(config.get("autoescape", True)),
        filters=config.get("filters"),
        globals=config.get("globals"),
    )
