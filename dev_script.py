#!/usr/bin/env python3
"""
Development Script Runner

Runs script graphs headless against a recording engine facade.
No window, no game - every engine call is logged and the exported state
is printed at the end.

Usage:
    # Run a level's graphs for 10 ticks of 16 ms
    python dev_script.py levels/castle.yaml

    # Lint first, longer run, with some world state
    python dev_script.py levels/ --validate --ticks 120 --flag torch --room hall

    # Start from a saved snapshot and write the result
    python dev_script.py levels/castle.yaml --state save.json --output after.json
"""

import argparse
import os
import sys
from pathlib import Path

# Ensure project root is on path
_project_root = os.path.dirname(os.path.abspath(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from retro.logging import (
    close_all_sinks, configure_logging, create_sink_for_module, disable_logging, register_sink,
)
from retro.scripting import (
    GraphLoadError,
    InterpreterConfig,
    RecordingFacade,
    ScriptInterpreter,
    load_graph_directory,
    load_graph_file,
    validate_graph,
)


def load_graphs(paths):
    """Load graphs from files and directories, in argument order."""
    graphs = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            graphs.extend(load_graph_directory(path))
        else:
            graphs.extend(load_graph_file(path))
    return graphs


def main():
    """Main entry point for the development script runner."""
    parser = argparse.ArgumentParser(
        description='Development Script Runner - run script graphs headless',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python dev_script.py levels/castle.yaml
  python dev_script.py levels/ --validate --ticks 120
  python dev_script.py levels/castle.yaml --plate p1 --defeated boss
        """
    )

    parser.add_argument('graphs', nargs='+', help='Graph files (YAML/JSON) or directories')
    parser.add_argument('--ticks', '-n', type=int, default=10, help='Ticks to run (default: 10)')
    parser.add_argument('--dt', type=float, default=16.0, help='Milliseconds per tick (default: 16)')
    parser.add_argument('--validate', action='store_true', help='Lint graphs and print issues before running')

    world = parser.add_argument_group('world state')
    world.add_argument('--flag', action='append', default=[], help='Set a flag before the run')
    world.add_argument('--room', action='append', default=[], help='Room the player is in')
    world.add_argument('--plate', action='append', default=[], help='Active pressure plate')
    world.add_argument('--defeated', action='append', default=[], help='Defeated enemy id')
    world.add_argument('--cutscene-ended', action='append', default=[], help='Finished cutscene id')
    world.add_argument('--key', action='append', default=[], help='Input action held down')
    world.add_argument('--trigger', action='append', default=[], help='trigger_event() kind before the run')

    parser.add_argument('--state', type=str, help='Import a state snapshot (JSON) before the run')
    parser.add_argument('--output', '-o', type=str, help='Write the final snapshot here instead of stdout')
    parser.add_argument('--log-level', type=str, default='info', help='Log level (default: info)')
    parser.add_argument('--trace', action='store_true', help='Log every node a chain visits')
    parser.add_argument('--quiet', '-q', action='store_true', help='Silence log output (results and snapshot only)')

    args = parser.parse_args()

    configure_logging(level=args.log_level, script_trace=args.trace)
    if args.quiet:
        disable_logging()
    # Chain records go to JSONL when RETRO_LOGGING_SCRIPTING_ENABLED=true
    register_sink('scripting', create_sink_for_module('scripting'))

    try:
        graphs = load_graphs(args.graphs)
    except (GraphLoadError, OSError) as e:
        print(f"Error loading graphs: {e}", file=sys.stderr)
        return 1

    facade = RecordingFacade()
    facade.rooms.update(args.room)
    facade.plates.update(args.plate)
    facade.defeated.update(args.defeated)
    facade.ended_cutscenes.update(args.cutscene_ended)
    facade.keys.update(args.key)

    with ScriptInterpreter(engine=facade, config=InterpreterConfig.from_env()) as interpreter:
        if args.validate:
            problems = 0
            for graph in graphs:
                for issue in validate_graph(graph, interpreter.registry, interpreter.triggers):
                    print(issue)
                    problems += issue.level == 'error'
            if problems:
                print(f"{problems} error(s) found", file=sys.stderr)

        interpreter.load_all(graphs)

        if args.state:
            if not interpreter.import_state(Path(args.state).read_text(encoding='utf-8')):
                print(f"Could not import {args.state}", file=sys.stderr)
                return 1

        for flag in args.flag:
            interpreter.set_flag(flag)
        for kind in args.trigger:
            interpreter.trigger_event(kind)

        interpreter.start()
        for _ in range(args.ticks):
            for result in interpreter.tick(args.dt):
                print(f"[{interpreter.current_time:8.1f}] {result.graph_id}/{result.event_id}: "
                      f"{' -> '.join(result.visited)} ({result.outcome.value})")

        print(f"\n{len(facade.calls)} engine call(s), {interpreter.in_flight} chain(s) still waiting")

        snapshot = interpreter.export_state()
        if args.output:
            Path(args.output).write_text(snapshot, encoding='utf-8')
            print(f"State written to {args.output}")
        else:
            print(snapshot)

    return 0


if __name__ == '__main__':
    try:
        sys.exit(main())
    finally:
        close_all_sinks()
