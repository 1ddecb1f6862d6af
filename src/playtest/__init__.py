"""
Scripted playtest scenarios run against the playback engine.
"""

from src.playtest.scenario_runner import (
    AssertionOperator,
    PlaytestScenario,
    ScenarioFormatError,
    ScenarioResult,
    ScenarioRunner,
    ScenarioStep,
    StepResult,
    VariableExpectation,
    load_scenarios,
)

__all__ = [
    "AssertionOperator",
    "PlaytestScenario",
    "ScenarioFormatError",
    "ScenarioResult",
    "ScenarioRunner",
    "ScenarioStep",
    "StepResult",
    "VariableExpectation",
    "load_scenarios",
]
