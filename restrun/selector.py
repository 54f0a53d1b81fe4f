"""Interactive environment selection using questionary."""

from typing import List, Optional

import questionary

from .display import ICONS, get_display


def select_environment_interactive(names: List[str]) -> Optional[str]:
    """Show interactive picker for environment selection.

    Args:
        names: Environment names found next to the script

    Returns:
        Selected environment name or None if cancelled
    """
    if not names:
        return None

    choices: List[questionary.Choice] = [
        questionary.Choice(title=name, value=name) for name in names
    ]
    choices.append(questionary.Choice(title="Cancel", value=None))

    console = get_display().console
    console.print()
    console.print(f"[bold cyan]{ICONS['file']} Multiple environments found[/bold cyan]")
    console.print()

    selected = questionary.select(
        "Select an environment:",
        choices=choices,
        use_arrow_keys=True,
        use_shortcuts=False,
        pointer=ICONS["arrow"],
        qmark=ICONS["diamond"],
    ).ask()

    # questionary returns the title for value=None choices
    if selected not in names:
        return None

    return selected


def format_environment_list(names: List[str]) -> str:
    """Format environment names for display in error messages."""
    return "\n".join(f"  - {name}" for name in names)
