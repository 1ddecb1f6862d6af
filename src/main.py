"""
Branchplay - Main Entry Point

An interactive playtest console for branching interactive fiction.

This module provides the main entry point, the player configuration, and
the PlaytestCLI that drives a PlaybackEngine from the terminal.
"""

import sys
from pathlib import Path

# Add the project root to the Python path for module discovery
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import argparse
import logging
import json
from dataclasses import dataclass, field
from typing import Any, Optional

from src.data_models import (
    Choice,
    Passage,
    Story,
    StoryFormatError,
    Variable,
    VariableType,
    load_story,
)
from src.observability import (
    PlaythroughFormatError,
    ReplaySession,
    save_playthrough,
)
from src.player.engine import PlaybackEngine
from src.playtest import ScenarioFormatError, ScenarioRunner, load_scenarios


# Configure logging
def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class PlayerConfig:
    """Configuration for a playtest session."""

    story_path: Optional[Path] = None  # None = built-in demo story
    export_dir: Path = field(default_factory=lambda: Path("playthroughs"))
    start_passage: Optional[str] = None
    breakpoints: list[str] = field(default_factory=list)
    debug_mode: bool = False
    json_indent: int = 2

    # Runtime options
    verbose: bool = False

    def __post_init__(self):
        """Ensure paths are Path objects."""
        if isinstance(self.story_path, str):
            self.story_path = Path(self.story_path)
        if isinstance(self.export_dir, str):
            self.export_dir = Path(self.export_dir)


# =============================================================================
# DEMO STORY
# =============================================================================

def create_demo_story() -> Story:
    """
    Build a small story exercising loops, variables and an ending.

    Returns:
        Story with passages 'gate', 'courtyard', 'well' and 'tower'
    """
    story = Story(title="The Sunken Keep")

    gate = story.add_passage(Passage(
        id="gate",
        title="Gate",
        content="A rusted portcullis hangs half-raised over the keep's entrance.",
    ))
    courtyard = story.add_passage(Passage(
        id="courtyard",
        title="Courtyard",
        content="Weeds crack the flagstones. A well stands at the centre; a tower looms beyond.",
    ))
    well = story.add_passage(Passage(
        id="well",
        title="Well",
        content="Something glints at the bottom of the well, far out of reach.",
    ))
    tower = story.add_passage(Passage(
        id="tower",
        title="Tower",
        content="You climb the spiral stair and look out over the drowned valley. The end.",
    ))

    gate.add_choice(Choice(id="enter", text="Duck under the portcullis", target=courtyard.id))
    courtyard.add_choice(Choice(id="look-well", text="Peer into the well", target=well.id))
    courtyard.add_choice(Choice(id="climb", text="Climb the tower", target=tower.id))
    courtyard.add_choice(Choice(id="leave", text="Return to the gate", target=gate.id))
    well.add_choice(Choice(id="back", text="Step back from the well", target=courtyard.id))

    story.add_variable(Variable(name="courage", type=VariableType.NUMBER, initial=3))
    story.add_variable(Variable(name="has_coin", type=VariableType.BOOLEAN, initial=False))
    story.add_variable(Variable(name="player_name", type=VariableType.STRING, initial="Wanderer"))

    return story


def parse_value(raw: str) -> Any:
    """Interpret console input as JSON where possible, else as a plain string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def create_engine(config: PlayerConfig) -> PlaybackEngine:
    """Create an engine with the configured story, breakpoints and debug mode."""
    story = load_story(config.story_path) if config.story_path else create_demo_story()
    engine = PlaybackEngine(story)
    for passage_id in config.breakpoints:
        if not engine.has_breakpoint(passage_id):
            engine.toggle_breakpoint(passage_id)
    if config.debug_mode != engine.debug_mode:
        engine.toggle_debug_mode()
    return engine


# =============================================================================
# CLI INTERFACE
# =============================================================================

class PlaytestCLI:
    """Interactive command-line interface for playtesting a story."""

    def __init__(self, engine: PlaybackEngine, config: Optional[PlayerConfig] = None):
        self.engine = engine
        self.config = config or PlayerConfig()
        self.running = False
        self.commands = {
            "help": self.cmd_help,
            "status": self.cmd_status,
            "look": self.cmd_look,
            "choose": self.cmd_choose,
            "undo": self.cmd_undo,
            "jump": self.cmd_jump,
            "history": self.cmd_history,
            "vars": self.cmd_vars,
            "set": self.cmd_set,
            "break": self.cmd_break,
            "pause": self.cmd_pause,
            "resume": self.cmd_resume,
            "restart": self.cmd_restart,
            "stop": self.cmd_stop,
            "start": self.cmd_start,
            "debug": self.cmd_debug,
            "errors": self.cmd_errors,
            "log": self.cmd_log,
            "export": self.cmd_export,
            "quit": self.cmd_quit,
            "exit": self.cmd_quit,
        }

    def run(self) -> None:
        """Run the interactive CLI loop."""
        self.running = True
        print("\n" + "=" * 60)
        print("BRANCHPLAY - Playtest Console")
        print("=" * 60)
        print("Type 'help' for available commands, 'quit' to exit.\n")

        if not self.engine.active:
            self.engine.start(self.config.start_passage)
        self.cmd_look("")

        while self.running:
            try:
                user_input = input(f"[{self.engine.phase.value}]> ").strip()
                if not user_input:
                    continue

                self.process_command(user_input)

            except KeyboardInterrupt:
                print("\nInterrupted. Type 'quit' to exit.")
            except EOFError:
                self.running = False

        print("\nThe end... for now.")

    def process_command(self, user_input: str) -> None:
        """Process a user command."""
        parts = user_input.split(maxsplit=1)
        cmd = parts[0].lower()
        args = parts[1] if len(parts) > 1 else ""

        if cmd in self.commands:
            self.commands[cmd](args)
        else:
            print(f"Unknown command: {cmd}. Type 'help' for available commands.")

    def _report_new_errors(self, before: int) -> None:
        for error in self.engine.errors[before:]:
            print(f"  ! {error}")

    def cmd_help(self, args: str) -> None:
        """Show help information."""
        print("""
Available Commands:
  status          - Show playback status
  look            - Show the current passage and its choices
  choose N|ID     - Take a choice by number or id (e.g., 'choose 1')
  undo            - Step back one passage
  jump N          - Rewind to history step N, restoring its variables
  history         - Show the steps taken so far
  vars            - Show current variables
  set NAME VALUE  - Set a variable (VALUE parsed as JSON, e.g., 'set courage 5')
  break ID        - Toggle a breakpoint on a passage
  pause / resume  - Pause or resume playback
  restart         - Restart the playthrough
  stop            - Stop the playthrough
  start [ID]      - Start a playthrough, optionally at a passage
  debug           - Toggle debug tracing
  errors          - Show recorded errors
  log             - Show the run log
  export [PATH]   - Export the playthrough as JSON
  help            - Show this help
  quit/exit       - Exit the console
""")

    def cmd_status(self, args: str) -> None:
        """Show playback status."""
        engine = self.engine
        passage = engine.current_passage
        print(f"Phase: {engine.phase.value}")
        print(f"Passage: {passage.title if passage else '-'}")
        print(f"Steps: {len(engine.history)}  Unique passages: {engine.unique_passages_visited}")
        print(f"Duration: {engine.duration / 1000:.1f}s")
        print(f"Breakpoints: {', '.join(sorted(engine.breakpoints)) or 'none'}")
        print(f"Debug mode: {'on' if engine.debug_mode else 'off'}")
        if engine.completed:
            print("The story has reached an ending.")

    def cmd_look(self, args: str) -> None:
        """Show the current passage."""
        passage = self.engine.current_passage
        if passage is None:
            print("No active playthrough. Use 'start' to begin.")
            return
        print(f"\n== {passage.title} ==")
        print(passage.content)
        choices = self.engine.available_choices
        if not choices:
            print("\n(The End)")
            return
        print()
        for number, choice in enumerate(choices, start=1):
            print(f"  {number}. {choice.text}")
        if self.engine.paused:
            print("\n[paused]")

    def cmd_choose(self, args: str) -> None:
        """Take a choice by number or id."""
        if not args:
            print("Usage: choose N|ID (e.g., 'choose 1')")
            return
        key = args.strip()
        choices = self.engine.available_choices
        choice_id = key
        if key.isdigit() and 1 <= int(key) <= len(choices):
            choice_id = choices[int(key) - 1].id

        before = len(self.engine.errors)
        if self.engine.make_choice(choice_id):
            if self.engine.paused:
                print(f"Breakpoint hit at '{self.engine.current_passage.title}'.")
            self.cmd_look("")
        else:
            self._report_new_errors(before)

    def cmd_undo(self, args: str) -> None:
        """Step back one passage."""
        if self.engine.undo():
            self.cmd_look("")
        else:
            print("Nothing to undo.")

    def cmd_jump(self, args: str) -> None:
        """Rewind to a history step."""
        try:
            index = int(args.strip())
        except ValueError:
            print("Usage: jump N (e.g., 'jump 0')")
            return
        before = len(self.engine.errors)
        if self.engine.jump_to_step(index):
            self.cmd_look("")
        else:
            self._report_new_errors(before)

    def cmd_history(self, args: str) -> None:
        """Show history."""
        history = self.engine.history
        print("\nHistory:")
        print("-" * 40)
        for step in history:
            print(f"  {step}")
        print("-" * 40)

    def cmd_vars(self, args: str) -> None:
        """Show variables."""
        variables = self.engine.variables
        if not variables:
            print("No variables.")
            return
        for name, value in sorted(variables.items()):
            print(f"  {name} = {value!r}")

    def cmd_set(self, args: str) -> None:
        """Set a variable."""
        parts = args.split(maxsplit=1)
        if len(parts) != 2:
            print("Usage: set NAME VALUE")
            return
        if not self.engine.active:
            print("No active playthrough.")
            return
        name, raw = parts
        value = parse_value(raw)
        self.engine.set_variable(name, value)
        print(f"{name} = {value!r}")

    def cmd_break(self, args: str) -> None:
        """Toggle a breakpoint."""
        passage_id = args.strip()
        if not passage_id:
            print(f"Breakpoints: {', '.join(sorted(self.engine.breakpoints)) or 'none'}")
            return
        enabled = self.engine.toggle_breakpoint(passage_id)
        print(f"Breakpoint {'set on' if enabled else 'cleared from'} '{passage_id}'")

    def cmd_pause(self, args: str) -> None:
        self.engine.pause()
        print(f"Phase: {self.engine.phase.value}")

    def cmd_resume(self, args: str) -> None:
        self.engine.resume()
        print(f"Phase: {self.engine.phase.value}")

    def cmd_restart(self, args: str) -> None:
        self.engine.restart()
        self.cmd_look("")

    def cmd_stop(self, args: str) -> None:
        self.engine.stop()
        print("Playthrough stopped.")

    def cmd_start(self, args: str) -> None:
        """Start a playthrough."""
        if self.engine.active:
            print("Already playing. Use 'restart' or 'stop' first.")
            return
        before = len(self.engine.errors)
        self.engine.start(args.strip() or self.config.start_passage)
        if self.engine.active:
            self.cmd_look("")
        else:
            self._report_new_errors(before)

    def cmd_debug(self, args: str) -> None:
        enabled = self.engine.toggle_debug_mode()
        print(f"Debug mode {'on' if enabled else 'off'}")

    def cmd_errors(self, args: str) -> None:
        """Show recorded errors; 'errors clear' empties the list."""
        if args.strip() == "clear":
            self.engine.clear_errors()
            print("Errors cleared.")
            return
        errors = self.engine.errors
        if not errors:
            print("No errors.")
            return
        for error in errors:
            print(f"  {error}")

    def cmd_log(self, args: str) -> None:
        """Show the run log."""
        print(self.engine.run_log.format_log(max_events=20))

    def cmd_export(self, args: str) -> None:
        """Export the playthrough."""
        recording = self.engine.get_playthrough()
        if args.strip():
            path = Path(args.strip())
        else:
            stamp = recording.metadata.recorded_at.replace(":", "-")
            path = self.config.export_dir / f"playthrough_{stamp}.json"
        try:
            save_playthrough(recording, path, indent=self.config.json_indent)
        except OSError as e:
            print(f"Export failed: {e}")
            return
        print(f"Exported {len(recording.steps)} steps to {path}")

    def cmd_quit(self, args: str) -> None:
        """Quit the console."""
        self.running = False


# =============================================================================
# BATCH MODES
# =============================================================================

def run_scenarios(engine: PlaybackEngine, scenario_path: Path) -> bool:
    """
    Run every scenario in a file and print a report.

    Returns:
        True if all scenarios passed
    """
    scenarios = load_scenarios(scenario_path)
    runner = ScenarioRunner(engine)
    results = runner.run_all(scenarios)
    for result in results:
        print(result.format_report())
    passed = sum(1 for r in results if r.passed)
    print(f"\n{passed}/{len(results)} scenarios passed")
    return passed == len(results)


def run_replay(engine: PlaybackEngine, replay_path: Path) -> bool:
    """Replay a recorded playthrough and report whether it still matches."""
    session = ReplaySession.load(replay_path)
    result = session.run(engine)
    print(result)
    return result.passed


# =============================================================================
# ARGUMENTS
# =============================================================================

def parse_arguments(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Branchplay - playtest and debug branching interactive fiction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m src.main                                # Play the built-in demo story
  python -m src.main --story story.json             # Play a story file
  python -m src.main --breakpoint well --debug      # Pause whenever 'well' is entered
  python -m src.main --story story.json --scenario scenarios.json
  python -m src.main --story story.json --replay playthroughs/run.json
        """
    )

    parser.add_argument(
        "--story",
        type=Path,
        help="Story JSON file to load (default: built-in demo story)",
    )
    parser.add_argument(
        "--start",
        type=str,
        help="Passage id to start from (default: the story's start passage)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    # Debugging options
    debug_group = parser.add_argument_group("Debugging Options")
    debug_group.add_argument(
        "--breakpoint",
        action="append",
        default=[],
        metavar="PASSAGE_ID",
        help="Pause when this passage is entered (repeatable)",
    )
    debug_group.add_argument(
        "--debug",
        action="store_true",
        help="Trace every passage transition",
    )

    # Export options
    export_group = parser.add_argument_group("Export Options")
    export_group.add_argument(
        "--export-dir",
        type=Path,
        default=Path("playthroughs"),
        help="Directory for exported playthroughs (default: playthroughs)",
    )
    export_group.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indent for exports (default: 2)",
    )

    # Batch options
    batch_group = parser.add_argument_group("Batch Options")
    batch_group.add_argument(
        "--scenario",
        type=Path,
        help="Run the scenarios in this JSON file and exit",
    )
    batch_group.add_argument(
        "--replay",
        type=Path,
        help="Replay an exported playthrough and exit",
    )

    return parser.parse_args(argv)


def create_config_from_args(args: argparse.Namespace) -> PlayerConfig:
    """Create PlayerConfig from parsed arguments."""
    return PlayerConfig(
        story_path=args.story,
        export_dir=args.export_dir,
        start_passage=args.start,
        breakpoints=list(args.breakpoint),
        debug_mode=args.debug,
        json_indent=args.indent,
        verbose=args.verbose,
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for CLI usage.

    Returns:
        Process exit code
    """
    args = parse_arguments(argv)
    setup_logging(args.verbose)
    config = create_config_from_args(args)

    try:
        engine = create_engine(config)
    except StoryFormatError as e:
        logger.error(f"Could not load story: {e}")
        return 2

    if args.scenario:
        try:
            return 0 if run_scenarios(engine, args.scenario) else 1
        except ScenarioFormatError as e:
            logger.error(f"Could not load scenarios: {e}")
            return 2

    if args.replay:
        try:
            return 0 if run_replay(engine, args.replay) else 1
        except (OSError, json.JSONDecodeError, PlaythroughFormatError) as e:
            logger.error(f"Could not load replay: {e}")
            return 2

    print("=" * 60)
    print("BRANCHPLAY v0.1.0")
    print(f"Story: {engine.story.title}")
    print("=" * 60)

    cli = PlaytestCLI(engine, config)
    cli.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
