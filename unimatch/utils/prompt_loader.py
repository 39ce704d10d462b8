"""
Jinja2 prompt templates for the matching engine.

Templates live under prompts/ at the project root:
- matching/knowledge_system.j2   system prompt for knowledge-based generation
- matching/profile.j2            student profile block plus hard constraints
- matching/verification_system.j2
- matching/verification.j2       search snippets + one match to reconcile

Usage:
    from unimatch.utils.prompt_loader import render_prompt

    prompt = render_prompt("matching/profile.j2", profile=profile, budget_line="...")
"""

from pathlib import Path
from typing import Any, Optional

import structlog
from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    Undefined,
)

logger = structlog.get_logger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "prompts"


def money(value: Any) -> str:
    """Format an amount with thousands separators, e.g. 1500000 -> "1,500,000"."""
    try:
        return f"{float(value):,.0f}"
    except (TypeError, ValueError):
        return str(value)


class PromptLoader:
    """Loads prompt templates from a directory and renders them as plain text.

    Rendering is whitespace-preserving (trim_blocks/lstrip_blocks) and never
    HTML-escapes: the output goes to a completion model, not a browser.
    """

    def __init__(
        self,
        template_dir: Optional[Path] = None,
        strict_undefined: bool = False,
    ) -> None:
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR
        self.strict_undefined = strict_undefined

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined if strict_undefined else Undefined,
        )
        self.env.filters["money"] = money

        logger.debug(
            "PromptLoader initialized",
            template_dir=str(self.template_dir),
            strict_undefined=strict_undefined,
        )

    def render(
        self,
        template_name: str,
        correlation_id: Optional[str] = None,
        **variables: Any,
    ) -> str:
        """
        Render a template with the given variables.

        Args:
            template_name: Path relative to the template dir ("matching/profile.j2")
            correlation_id: Optional correlation ID for logging
            **variables: Template variables

        Raises:
            jinja2.TemplateError: Missing template, syntax error, or (in strict
                mode) an undefined variable. Logged, then re-raised unchanged.
        """
        log = logger.bind(template_name=template_name, correlation_id=correlation_id)

        try:
            rendered = self.env.get_template(template_name).render(**variables)
        except TemplateError as e:
            log.error(
                "Prompt rendering failed",
                error_type=type(e).__name__,
                error=str(e),
                template_dir=str(self.template_dir),
                variables_provided=sorted(variables),
            )
            raise

        log.debug("Template rendered", rendered_length=len(rendered))
        return rendered


_default_loader: Optional[PromptLoader] = None


def get_default_loader() -> PromptLoader:
    """Shared loader over the project's prompts/ directory."""
    global _default_loader
    if _default_loader is None:
        _default_loader = PromptLoader()
    return _default_loader


def render_prompt(
    template_name: str,
    correlation_id: Optional[str] = None,
    **variables: Any,
) -> str:
    """Render a template with the default loader."""
    return get_default_loader().render(
        template_name, correlation_id=correlation_id, **variables
    )
