"""
Scripted playtest scenarios.

A scenario is an author-written path through a story: at each step the
runner checks the current passage and variables, then takes the named
choice. Results are collected per step; a failing step never raises.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional
import json
import logging
import time

from src.player.engine import PlaybackEngine

logger = logging.getLogger(__name__)

_MISSING = object()


class ScenarioFormatError(Exception):
    """Raised when a scenario file cannot be parsed."""

    pass


class AssertionOperator(str, Enum):
    """Comparison used by a variable expectation."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    CONTAINS = "contains"
    EXISTS = "exists"


@dataclass
class VariableExpectation:
    """An assertion about one variable's value."""

    variable_name: str
    expected_value: Any = None
    operator: AssertionOperator = AssertionOperator.EQUALS

    def check(self, variables: dict[str, Any]) -> Optional[str]:
        """
        Evaluate against a variable mapping.

        Returns:
            None if the expectation holds, otherwise a failure message
        """
        actual = variables.get(self.variable_name, _MISSING)
        if self.operator == AssertionOperator.EXISTS:
            if actual is _MISSING:
                return f"Variable '{self.variable_name}' does not exist"
            return None
        if actual is _MISSING:
            return f"Variable '{self.variable_name}' not found"

        try:
            if self.operator == AssertionOperator.EQUALS:
                ok = actual == self.expected_value
            elif self.operator == AssertionOperator.NOT_EQUALS:
                ok = actual != self.expected_value
            elif self.operator == AssertionOperator.GREATER_THAN:
                ok = actual > self.expected_value
            elif self.operator == AssertionOperator.LESS_THAN:
                ok = actual < self.expected_value
            else:
                ok = self.expected_value in actual
        except TypeError:
            ok = False

        if ok:
            return None
        return (
            f"Variable '{self.variable_name}' expected {self.operator.value} "
            f"{self.expected_value!r}, got {actual!r}"
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VariableExpectation":
        return cls(
            variable_name=data.get("variableName", data.get("variable_name")),
            expected_value=data.get("expectedValue", data.get("expected_value")),
            operator=AssertionOperator(data.get("operator", "equals")),
        )


@dataclass
class ScenarioStep:
    """One scripted step: checks on the current passage, then an optional choice."""

    passage_title: Optional[str] = None
    passage_id: Optional[str] = None
    choice_text: Optional[str] = None
    choice_id: Optional[str] = None
    expected_variables: list[VariableExpectation] = field(default_factory=list)
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScenarioStep":
        return cls(
            passage_title=data.get("passageTitle"),
            passage_id=data.get("passageId"),
            choice_text=data.get("choiceText"),
            choice_id=data.get("choiceId"),
            expected_variables=[
                VariableExpectation.from_dict(v) for v in data.get("expectedVariables", [])
            ],
            description=data.get("description", ""),
        )


@dataclass
class PlaytestScenario:
    """A named, ordered list of scripted steps."""

    id: str
    name: str
    steps: list[ScenarioStep] = field(default_factory=list)
    start_passage_id: Optional[str] = None
    initial_variables: dict[str, Any] = field(default_factory=dict)
    expected_final_passage_id: Optional[str] = None
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlaytestScenario":
        try:
            return cls(
                id=data["id"],
                name=data.get("name", data["id"]),
                steps=[ScenarioStep.from_dict(s) for s in data.get("steps", [])],
                start_passage_id=data.get("startPassageId"),
                initial_variables=dict(data.get("initialVariables", {})),
                expected_final_passage_id=data.get("expectedFinalPassageId"),
                enabled=bool(data.get("enabled", True)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ScenarioFormatError(f"Malformed scenario: {e}") from e


def load_scenarios(filepath: Path | str) -> list[PlaytestScenario]:
    """Load one scenario object or a list of them from a JSON file."""
    path = Path(filepath)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ScenarioFormatError(f"Cannot read scenario file {path}: {e}") from e
    records = data if isinstance(data, list) else data.get("scenarios", [data])
    return [PlaytestScenario.from_dict(record) for record in records]


@dataclass
class StepResult:
    step_index: int
    passed: bool
    actual_passage_id: Optional[str] = None
    actual_passage_title: Optional[str] = None
    errors: list[str] = field(default_factory=list)


@dataclass
class ScenarioResult:
    """Outcome of one scenario run."""

    scenario_id: str
    scenario_name: str
    passed: bool
    step_results: list[StepResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    final_passage_id: Optional[str] = None
    final_passage_title: Optional[str] = None
    final_variables: dict[str, Any] = field(default_factory=dict)
    start_time: float = 0.0
    end_time: float = 0.0

    @property
    def duration(self) -> float:
        """Wall-clock seconds spent running the scenario."""
        return max(0.0, self.end_time - self.start_time)

    @property
    def passed_steps(self) -> int:
        return sum(1 for r in self.step_results if r.passed)

    @property
    def failed_steps(self) -> int:
        return sum(1 for r in self.step_results if not r.passed)

    def format_report(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] {self.scenario_name} ({self.passed_steps}/{len(self.step_results)} steps)"]
        for error in self.errors:
            lines.append(f"  - {error}")
        return "\n".join(lines)


class ScenarioRunner:
    """Executes playtest scenarios against a PlaybackEngine."""

    def __init__(self, engine: PlaybackEngine):
        self.engine = engine

    def execute(self, scenario: PlaytestScenario, stop_on_first_error: bool = False) -> ScenarioResult:
        """
        Run a scenario from a fresh playthrough.

        Args:
            scenario: Scenario to run
            stop_on_first_error: Halt after the first failing step

        Returns:
            ScenarioResult with per-step outcomes
        """
        result = ScenarioResult(
            scenario_id=scenario.id,
            scenario_name=scenario.name,
            passed=False,
            start_time=time.time(),
        )
        engine = self.engine
        engine.stop()
        engine.start(scenario.start_passage_id)

        if not engine.active:
            message = f"Could not start scenario at '{scenario.start_passage_id or 'story start'}'"
            result.errors.append(message)
            result.end_time = time.time()
            logger.warning(f"Scenario '{scenario.name}': {message}")
            return result

        for name, value in scenario.initial_variables.items():
            engine.set_variable(name, value)

        for index, step in enumerate(scenario.steps):
            step_result = self._execute_step(index, step)
            result.step_results.append(step_result)
            result.errors.extend(f"Step {index + 1}: {e}" for e in step_result.errors)
            if not step_result.passed and stop_on_first_error:
                break

        passage = engine.current_passage
        result.final_passage_id = engine.current_passage_id
        result.final_passage_title = passage.title if passage else None
        result.final_variables = dict(engine.variables)

        expected_final = scenario.expected_final_passage_id
        if expected_final is not None and expected_final != engine.current_passage_id:
            result.errors.append(
                f"Expected to end at '{expected_final}' but ended at '{engine.current_passage_id}'"
            )

        result.passed = not result.errors
        result.end_time = time.time()
        logger.info(
            f"Scenario '{scenario.name}' {'passed' if result.passed else 'failed'} "
            f"({result.passed_steps}/{len(result.step_results)} steps)"
        )
        return result

    def run_all(
        self, scenarios: list[PlaytestScenario], stop_on_first_error: bool = False
    ) -> list[ScenarioResult]:
        """Run every enabled scenario in order."""
        return [
            self.execute(scenario, stop_on_first_error)
            for scenario in scenarios
            if scenario.enabled
        ]

    def _execute_step(self, index: int, step: ScenarioStep) -> StepResult:
        engine = self.engine
        passage = engine.current_passage
        errors: list[str] = []
        result = StepResult(
            step_index=index,
            passed=False,
            actual_passage_id=engine.current_passage_id,
            actual_passage_title=passage.title if passage else None,
            errors=errors,
        )

        if passage is None:
            errors.append("No current passage")
            return result

        if step.passage_title is not None and passage.title != step.passage_title:
            errors.append(f"Expected passage '{step.passage_title}' but was at '{passage.title}'")
        if step.passage_id is not None and passage.id != step.passage_id:
            errors.append(f"Expected passage id '{step.passage_id}' but was at '{passage.id}'")

        variables = dict(engine.variables)
        for expectation in step.expected_variables:
            failure = expectation.check(variables)
            if failure:
                errors.append(failure)

        if step.choice_id is not None or step.choice_text is not None:
            choice = self._find_choice(step)
            if choice is None:
                label = step.choice_text if step.choice_text is not None else step.choice_id
                errors.append(f"Choice '{label}' not found in passage '{passage.title}'")
            elif not engine.make_choice(choice.id):
                errors.append(f"Choice '{choice.text}' could not be taken")

        result.passed = not errors
        return result

    def _find_choice(self, step: ScenarioStep):
        for choice in self.engine.available_choices:
            if step.choice_id is not None and choice.id == step.choice_id:
                return choice
            if step.choice_text is not None and choice.text == step.choice_text:
                return choice
        return None
