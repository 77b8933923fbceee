"""Interactive choice points.

Every prompt returns either a ``Choice`` wrapping the answer or the
``CANCELLED`` marker. Callers check ``isinstance(result, Cancelled)`` and hand
the marker back up instead of raising.
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, Sequence, Tuple, TypeVar, Union

import questionary
from questionary import Style

T = TypeVar("T")

# Custom questionary style (no background highlight)
CUSTOM_STYLE = Style([
    ('qmark', 'fg:#00d4ff bold'),
    ('question', 'bold'),
    ('answer', 'fg:#00d4ff bold'),
    ('pointer', 'fg:#00d4ff bold'),
    ('highlighted', 'fg:#00d4ff bold bg:default'),
    ('selected', 'fg:#00d4ff bold bg:default'),
    ('checkbox', 'fg:#888888'),
    ('checkbox-selected', 'fg:#00d4ff bold'),
])


@dataclass(frozen=True)
class Choice(Generic[T]):
    value: T


@dataclass(frozen=True)
class Cancelled:
    pass


CANCELLED = Cancelled()

PromptResult = Union[Choice, Cancelled]

# (label, value) pairs
Options = Sequence[Tuple[str, Any]]


class Prompter:
    """Choice capability consumed by the orchestrators."""

    def select(self, message: str, options: Options, default: Any = None) -> PromptResult:
        raise NotImplementedError

    def multiselect(self, message: str, options: Options, initial: Optional[Sequence[Any]] = None) -> PromptResult:
        raise NotImplementedError

    def text(self, message: str, default: str = "") -> PromptResult:
        raise NotImplementedError


class QuestionaryPrompter(Prompter):
    """Terminal prompts backed by questionary. ``ask()`` returning None means cancel."""

    def select(self, message: str, options: Options, default: Any = None) -> PromptResult:
        choices = [questionary.Choice(label, value=value) for label, value in options]
        answer = questionary.select(
            message,
            choices=choices,
            default=next((c for c in choices if c.value == default), None),
            style=CUSTOM_STYLE,
        ).ask()
        return CANCELLED if answer is None else Choice(answer)

    def multiselect(self, message: str, options: Options, initial: Optional[Sequence[Any]] = None) -> PromptResult:
        initial = list(initial or [])
        choices = [questionary.Choice(label, value=value, checked=value in initial) for label, value in options]
        answer = questionary.checkbox(message, choices=choices, style=CUSTOM_STYLE).ask()
        return CANCELLED if answer is None else Choice(list(answer))

    def text(self, message: str, default: str = "") -> PromptResult:
        answer = questionary.text(message, default=default, style=CUSTOM_STYLE).ask()
        return CANCELLED if answer is None else Choice(answer)


class NullPrompter(Prompter):
    """Used when prompting is disabled; any prompt is a programming error."""

    def _fail(self, message: str) -> PromptResult:
        raise RuntimeError(f"Prompt requested while prompting is disabled: {message}")

    def select(self, message, options, default=None):
        return self._fail(message)

    def multiselect(self, message, options, initial=None):
        return self._fail(message)

    def text(self, message, default=""):
        return self._fail(message)
