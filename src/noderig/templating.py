# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/templating.py
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined


def expand_env_vars(value: str) -> str:
    return re.sub(r"\$\{([^}^{]+)\}", lambda m: os.getenv(m.group(1), m.group(0)), value)


class TemplateRenderer:
    """
    jinja2 rendering for config files and manifests.
    Undefined variables are errors, never silently empty.
    """

    def __init__(self, templates_dir: Optional[Path] = None):
        loader = FileSystemLoader(str(templates_dir)) if templates_dir else None
        self.env = Environment(
            loader=loader,
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    @staticmethod
    def _expand(context: Dict[str, Any]) -> Dict[str, Any]:
        return {k: expand_env_vars(v) if isinstance(v, str) else v for k, v in context.items()}

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        tmpl = self.env.get_template(template_name)
        return tmpl.render(**self._expand(context))

    def render_string(self, source: str, context: Dict[str, Any]) -> str:
        return self.env.from_string(source).render(**self._expand(context))
