"""Prompt template engine: named templates from YAML with user overrides."""

from pathlib import Path
from typing import Any

import yaml

from conversation_engine.config import PROMPTS_OVERRIDE_PATH, PROMPTS_PATH
from conversation_engine.utils.logger import get_logger

logger = get_logger("conversation_engine.ai.prompts")

REQUIRED_TEMPLATES = (
    "analysis",
    "categorization",
    "summary",
    "urgency",
    "draft",
    "custom_draft",
)


class _KeepMissing(dict):
    """format_map mapping that leaves unknown placeholders untouched."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(
            f"Prompts config not found: {path}. Set PROMPTS_OVERRIDE_PATH or create config/prompts.yaml."
        )
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in prompts config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Prompts config must be a YAML object (dict), got {type(data)}")
    return data


def validate_prompts_config(config: dict[str, Any], require_all: bool = True) -> None:
    """Check layout: a ``templates`` dict of non-empty strings, all required names present."""
    templates = config.get("templates") or {}
    if not isinstance(templates, dict):
        raise ValueError("'templates' must be a mapping of name -> template string")
    for name, text in templates.items():
        if not isinstance(text, str) or not text.strip():
            raise ValueError(f"Template {name!r} must be a non-empty string")
    if require_all:
        missing = [name for name in REQUIRED_TEMPLATES if name not in templates]
        if missing:
            raise ValueError(f"Prompts config missing templates: {missing}")
    defaults = config.get("defaults") or {}
    if not isinstance(defaults, dict):
        raise ValueError("'defaults' must be a mapping")


class PromptTemplateEngine:
    """Builds provider prompts from named templates and keyed substitutions.

    Lookup order for a name: runtime override, then user override file, then defaults.
    """

    def __init__(
        self,
        templates: dict[str, str],
        system_prompt: str = "",
        overrides: dict[str, str] | None = None,
    ):
        self._templates = dict(templates)
        self._overrides: dict[str, str] = dict(overrides or {})
        self.system_prompt = system_prompt.strip()

    @classmethod
    def from_files(
        cls,
        path: str | Path | None = None,
        override_path: str | Path | None = None,
    ) -> "PromptTemplateEngine":
        """Load defaults (config/prompts.yaml) and optional user overrides."""
        default_path = Path(path) if path else PROMPTS_PATH
        config = _read_yaml(default_path)
        validate_prompts_config(config)
        defaults = config.get("defaults") or {}
        engine = cls(
            templates=config["templates"],
            system_prompt=str(defaults.get("system_prompt") or ""),
        )
        user_path = override_path if override_path is not None else PROMPTS_OVERRIDE_PATH
        if user_path:
            user_config = _read_yaml(Path(user_path))
            validate_prompts_config(user_config, require_all=False)
            for name, text in (user_config.get("templates") or {}).items():
                engine.override(name, text)
            user_system = (user_config.get("defaults") or {}).get("system_prompt")
            if user_system:
                engine.system_prompt = str(user_system).strip()
        logger.info(
            "prompts.loaded",
            path=str(default_path),
            override_path=str(user_path) if user_path else None,
            template_count=len(engine.names()),
            overridden=sorted(engine._overrides),
        )
        return engine

    def names(self) -> list[str]:
        return sorted(set(self._templates) | set(self._overrides))

    def get_template(self, name: str) -> str:
        if name in self._overrides:
            return self._overrides[name]
        if name in self._templates:
            return self._templates[name]
        raise ValueError(f"Unknown prompt template {name!r}. Known: {self.names()}")

    def is_overridden(self, name: str) -> bool:
        return name in self._overrides

    def override(self, name: str, template: str) -> None:
        """Replace a template for the lifetime of this engine."""
        if not isinstance(template, str) or not template.strip():
            raise ValueError(f"Override for {name!r} must be a non-empty string")
        self._overrides[name] = template

    def reset(self, name: str | None = None) -> None:
        """Drop one override, or all of them."""
        if name is None:
            self._overrides.clear()
        else:
            self._overrides.pop(name, None)

    def render(self, name: str, **values: Any) -> str:
        """Fill a template. None becomes an empty string; unknown placeholders are kept verbatim."""
        template = self.get_template(name)
        mapping = _KeepMissing({k: ("" if v is None else v) for k, v in values.items()})
        return template.format_map(mapping).strip()
