"""Validate prompt templates: load YAML (plus overrides), print summary table."""

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from conversation_engine.ai.prompts import PromptTemplateEngine

from .shared import console, logger


def validate_prompts(
    path: Optional[Path] = typer.Option(None, "--path", help="Defaults file (config/prompts.yaml)"),
    override: Optional[Path] = typer.Option(None, "--override", help="User override file"),
) -> None:
    """Load the prompt templates and overrides, report errors or a summary table."""
    log = logger.bind(command="validate-prompts")
    log.info("validate_prompts.start")
    try:
        engine = PromptTemplateEngine.from_files(path=path, override_path=override)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Prompt config error: {e}[/red]")
        log.error("validate_prompts.fail", error=str(e))
        raise SystemExit(1) from e

    table = Table(title="Prompt templates")
    table.add_column("Template", style="cyan")
    table.add_column("Length", justify="right")
    table.add_column("Overridden", justify="center")
    for name in engine.names():
        table.add_row(name, str(len(engine.get_template(name))), "yes" if engine.is_overridden(name) else "no")
    console.print(table)
    console.print(f"[green]Prompts valid. {len(engine.names())} templates.[/green]")
    log.info("validate_prompts.ok", templates=len(engine.names()))
