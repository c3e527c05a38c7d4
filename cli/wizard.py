"""
Мастер создания проекта.

Каждый вопрос — отдельное состояние; advance() — чистый переход,
поэтому поток проверяется тестами без интерактивного ввода.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Tuple


@dataclass(frozen=True)
class WizardStep:
    """Один вопрос мастера."""

    key: str
    prompt: str
    default: Optional[str] = None
    choices: Tuple[str, ...] = ()

    def resolve(self, raw: str) -> Tuple[Optional[str], Optional[str]]:
        """Вернуть (значение, ошибка) для введённого ответа."""
        value = raw.strip()
        if not value and self.default is not None:
            value = self.default
        if self.choices and value not in self.choices:
            return None, f"Choose one of: {', '.join(self.choices)}"
        if not value and self.default is None:
            return None, "A value is required"
        return value, None


NEW_PROJECT_STEPS: Tuple[WizardStep, ...] = (
    WizardStep("wizard", "Which wizard do you want to run?", default="new-project", choices=("new-project",)),
    WizardStep("server_base_url", "What is the URL of your perfbudget server?", default="http://localhost:9001"),
    WizardStep("project_name", "What would you like to name the project?"),
    WizardStep("external_url", "Where is the project's code hosted?", default=""),
)


@dataclass(frozen=True)
class WizardState:
    """Индекс текущего шага, собранные ответы и последняя ошибка."""

    steps: Tuple[WizardStep, ...] = NEW_PROJECT_STEPS
    index: int = 0
    answers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    error: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.index >= len(self.steps)

    @property
    def current(self) -> Optional[WizardStep]:
        return None if self.done else self.steps[self.index]


def advance(state: WizardState, raw_answer: str) -> WizardState:
    """Применить ответ к текущему шагу: следующий шаг или тот же с ошибкой."""
    step = state.current
    if step is None:
        return state
    value, error = step.resolve(raw_answer)
    if error:
        return replace(state, error=error)
    answers = dict(state.answers)
    answers[step.key] = value
    return replace(state, index=state.index + 1, answers=MappingProxyType(answers), error=None)


def run_wizard(ask: Callable[[WizardStep, Optional[str]], str],
               state: Optional[WizardState] = None) -> Mapping[str, str]:
    """Прогнать все шаги, спрашивая ответы через ask(step, error)."""
    state = state or WizardState()
    while not state.done:
        state = advance(state, ask(state.current, state.error))
    return state.answers
