"""
Operator prompts for fixers that need input before they run.

Given a fixer's InputSpec, ask which install mode to use and, where the
mode needs one, the path. Values supplied on the command line skip the
matching prompt.
"""

from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from printfix.models import FixParams, InputKind, InputSpec
from printfix.ui.theme import COLOR_BRAND, COLOR_DIM, COLOR_TEXT, ICON_INPUT


_KIND_PROMPTS = {
    InputKind.INF_FILE: "Path to the driver INF file",
    InputKind.UNC_PATH: r"Network path (\\server\printer)",
}


def params_from_options(
    inf: Optional[str], unc: Optional[str], auto: bool,
) -> Optional[FixParams]:
    """FixParams from command-line options, or None when none were given."""
    given = [v for v in (inf, unc, auto or None) if v]
    if len(given) > 1:
        raise click.UsageError("--inf, --unc and --auto-driver are mutually exclusive.")
    if inf:
        return FixParams(InputKind.INF_FILE, inf)
    if unc:
        return FixParams(InputKind.UNC_PATH, unc)
    if auto:
        return FixParams(InputKind.AUTO)
    return None


def prompt_params(spec: InputSpec, console: Console) -> Optional[FixParams]:
    """
    Ask the operator for the input a fixer declares.

    Returns None when the operator aborts (Ctrl-C / EOF), which callers
    treat as "no input supplied".
    """
    body = Text()
    body.append(f"{spec.description}\n", style=COLOR_TEXT)
    console.print(
        Panel(body, title=f"{ICON_INPUT}  {spec.title}", border_style=COLOR_BRAND, padding=(1, 2))
    )

    choices = [k.value for k in spec.kinds]
    try:
        kind = InputKind(
            click.prompt(
                "  Install mode",
                type=click.Choice(choices, case_sensitive=False),
                default=choices[0],
            ).lower()
        )
        path = None
        if kind in _KIND_PROMPTS:
            path = click.prompt(f"  {_KIND_PROMPTS[kind]}", type=str).strip()
    except click.Abort:
        console.print("\n  No input given.\n", style=COLOR_DIM)
        return None

    return FixParams(kind, path or None)
