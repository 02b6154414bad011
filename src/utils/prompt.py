"""Interactive console prompts."""

from __future__ import annotations

from typing import Callable

YES_ANSWERS = frozenset({"y", "yes"})


def ask_for_confirmation(
    prompt: str, input_func: Callable[[str], str] = input
) -> bool:
    """Ask a yes/no question on the console. Anything but y/yes is a no."""
    try:
        answer = input_func(f"{prompt} [y/N]: ")
    except EOFError:
        return False
    return answer.strip().lower() in YES_ANSWERS
