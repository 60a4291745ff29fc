"""
SpacetimeDSL: a small language for relativistic spacetime diagrams

Scripts declare observers (with piecewise constant proper acceleration),
inertial frames, lines and paths, and issue drawing commands. The
compiler turns a script into HCode; the engine runs it once per frame and
returns resolved drawing commands that the preview renders with
matplotlib.

Version: 0.1.0
"""

import json
import sys
import time
import warnings
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import matplotlib.colors as mcolors
import matplotlib.pyplot as plt

from spacetime_engine import (
    DrawingCommand, EngineOptions, ExecutionEngine, ExecutionResult,
)
from spacetime_errors import SpacetimeError
from spacetime_geometry import Coordinate
from spacetime_kinematics import AxisType, IntervalObserver, Line
from spacetime_parser import HCodeProgram, Op, Token, compile_tokens, tokenize

__version__ = "0.1.0"

# ============================================================================
# COMPILER FACADE
# ============================================================================

class SpacetimeCompiler:
    """
    Host-facing entry point: compile a script once, run it per frame

    Errors never escape compile_dsl or run; they come back as a result
    dictionary with success False and the structured error.
    """

    def __init__(self, options: Optional[EngineOptions] = None):
        self.engine = ExecutionEngine(options)
        self.tokens: List[Token] = []
        self.program: Optional[HCodeProgram] = None
        self.compilation_time = None
        self.last_result: Optional[ExecutionResult] = None

    def compile_dsl(self, source: str) -> dict:
        """
        Tokenize and compile a script

        Args:
            source: Script text

        Returns:
            Compilation result dictionary
        """
        start_time = time.time()
        self.program = None

        try:
            self.tokens = tokenize(source)
            self.program = compile_tokens(self.tokens)
        except SpacetimeError as e:
            return {
                'success': False,
                'error': e.to_dict(),
                'compilation_time': time.time() - start_time,
            }

        # A new program means new static declarations
        self.engine.reset_statics()
        self.compilation_time = time.time() - start_time

        if not any(instr.op == Op.COMMAND for instr in self.program.instructions):
            warnings.warn("The script compiled but contains no drawing commands")

        return {
            'success': True,
            'tokens': len(self.tokens),
            'instructions': len(self.program),
            'has_animation': self.program.has_animation,
            'has_controls': self.program.has_controls,
            'compilation_time': self.compilation_time,
        }

    def run(self, bindings: Optional[Dict[str, Any]] = None,
            frame_number: Optional[int] = None) -> dict:
        """
        Execute the compiled program once

        Args:
            bindings: Control variable values by name
            frame_number: Animation frame, 1-based

        Returns:
            Dictionary with the ExecutionResult or the structured error
        """
        if self.program is None:
            raise RuntimeError("No compiled program; call compile_dsl first")

        start_time = time.time()
        try:
            result = self.engine.execute(self.program, bindings, frame_number)
        except SpacetimeError as e:
            self.last_result = None
            return {
                'success': False,
                'error': e.to_dict(),
                'execution_time': time.time() - start_time,
            }

        self.last_result = result
        return {
            'success': True,
            'result': result,
            'commands': len(result.commands),
            'execution_time': time.time() - start_time,
        }

    def run_source(self, source: str, bindings: Optional[Dict[str, Any]] = None,
                   frame_number: Optional[int] = None) -> dict:
        """Compile and run in one step"""
        compiled = self.compile_dsl(source)
        if not compiled['success']:
            return compiled
        return self.run(bindings, frame_number)

    def run_frames(self, count: int, bindings: Optional[Dict[str, Any]] = None) -> List[dict]:
        """Run frames 1..count, stopping at the first failure"""
        results = []
        for frame_number in range(1, count + 1):
            outcome = self.run(bindings, frame_number)
            results.append(outcome)
            if not outcome['success']:
                break
        return results

    def reset(self):
        """Forget static variables so the next run starts fresh"""
        self.engine.reset_statics()


# ============================================================================
# PREVIEW
# ============================================================================

class DiagramPreview:
    """Static matplotlib rendering of one execution result"""

    def __init__(self, extent: float = 10.0, samples: int = 400, grid_lines: int = 10):
        self.fig = None
        self.ax = None
        self.extent = extent
        self.samples = samples
        self.grid_lines = grid_lines

    def limits(self, result: ExecutionResult) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        """View window from the last display command"""
        center, scale = Coordinate(0.0, 0.0), 1.0
        display = result.commands_of("display")
        if display:
            center = display[-1].properties["origin"]
            scale = display[-1].properties["scale"]
        half = self.extent / scale if scale > 0 else self.extent
        return (center.x - half, center.x + half), (center.t - half, center.t + half)

    def render(self, result: ExecutionResult, title: str = "Spacetime Diagram"):
        """Draw every command; returns the figure"""
        self.fig, self.ax = plt.subplots(figsize=(8, 8))
        xlim, tlim = self.limits(result)
        self.ax.set_xlim(*xlim)
        self.ax.set_ylim(*tlim)
        self.ax.set_aspect('equal')
        self.ax.set_title(title, fontsize=14, fontweight='bold')
        self.ax.set_xlabel('x', fontsize=12)
        self.ax.set_ylabel('t', fontsize=12)

        for command in result.commands:
            handler = getattr(self, f"_draw_{command.kind}", None)
            if handler is not None:
                handler(command, xlim, tlim)
        return self.fig

    def save(self, filename: str, dpi: int = 100):
        if self.fig is None:
            raise RuntimeError("Nothing rendered yet")
        self.fig.savefig(filename, dpi=dpi)

    def close(self):
        if self.fig is not None:
            plt.close(self.fig)
            self.fig = None
            self.ax = None

    @staticmethod
    def _color(command: DrawingCommand, default: str) -> str:
        for style in command.style:
            if mcolors.is_color_like(style):
                return style
        return default

    def _line_arrays(self, line: Line, xlim, tlim) -> Tuple[np.ndarray, np.ndarray]:
        if line.is_vertical:
            ts = np.linspace(tlim[0], tlim[1], self.samples)
            xs = np.full_like(ts, line.point.x)
        else:
            xs = np.linspace(xlim[0], xlim[1], self.samples)
            ts = line.slope * xs + line.offset
        if line.bounds is not None:
            b = line.bounds
            outside = (xs < b.min.x) | (xs > b.max.x) | (ts < b.min.t) | (ts > b.max.t)
            ts = np.where(outside, np.nan, ts)
        return xs, ts

    def _draw_axes(self, command, xlim, tlim):
        frame = command.properties["frame"]
        props = command.properties
        color = self._color(command, '#1D3557')
        for axis, show, label in ((AxisType.X, props["x"], props["xLabel"]),
                                  (AxisType.T, props["t"], props["tLabel"])):
            if not show:
                continue
            xs, ts = self._line_arrays(Line.from_axis(axis, frame), xlim, tlim)
            self.ax.plot(xs, ts, '-', color=color, linewidth=1.5)
            if label:
                end = frame.to_rest(Coordinate(0.9 * self.extent, 0.0) if axis == AxisType.X
                                    else Coordinate(0.0, 0.9 * self.extent))
                self.ax.annotate(label, (end.x, end.t), color=color, fontsize=11)
            if props["ticks"]:
                for k in range(-self.grid_lines, self.grid_lines + 1):
                    local = Coordinate(k, 0.0) if axis == AxisType.X else Coordinate(0.0, k)
                    tick = frame.to_rest(local)
                    self.ax.plot(tick.x, tick.t, '|' if axis == AxisType.X else '_',
                                 color=color, markersize=6)
                    if props["tickLabels"] and k != 0:
                        self.ax.annotate(str(k), (tick.x, tick.t), fontsize=7, color=color)

    def _draw_grid(self, command, xlim, tlim):
        frame = command.properties["frame"]
        color = self._color(command, '#A8DADC')
        for k in range(-self.grid_lines, self.grid_lines + 1):
            for axis in (AxisType.X, AxisType.T):
                xs, ts = self._line_arrays(Line.from_axis(axis, frame, float(k)), xlim, tlim)
                self.ax.plot(xs, ts, '-', color=color, linewidth=0.5, alpha=0.6)

    def _draw_hypergrid(self, command, xlim, tlim):
        color = self._color(command, '#F1FAEE')
        s = np.linspace(-3.0, 3.0, self.samples)
        for k in range(1, self.grid_lines + 1):
            if command.properties["x"]:
                self.ax.plot(k * np.cosh(s), k * np.sinh(s), color=color, linewidth=0.5)
                self.ax.plot(-k * np.cosh(s), k * np.sinh(s), color=color, linewidth=0.5)
            if command.properties["t"]:
                self.ax.plot(k * np.sinh(s), k * np.cosh(s), color=color, linewidth=0.5)
                self.ax.plot(k * np.sinh(s), -k * np.cosh(s), color=color, linewidth=0.5)

    def _draw_line(self, command, xlim, tlim):
        line = command.properties["line"]
        if command.properties["bounds"] is not None:
            line = line.with_bounds(command.properties["bounds"])
        xs, ts = self._line_arrays(line, xlim, tlim)
        self.ax.plot(xs, ts, '-', color=self._color(command, '#457B9D'), linewidth=1.2)

    def _draw_worldline(self, command, xlim, tlim):
        observer = command.properties["observer"]
        lo, hi = tlim
        base = observer
        if isinstance(observer, IntervalObserver):
            olo, ohi = observer.t_range()
            lo, hi = max(lo, olo), min(hi, ohi)
            base = observer.observer
        if lo >= hi:
            return
        xs, ts = base.sample(self.samples, (lo, hi))
        bounds = command.properties["bounds"]
        if bounds is not None:
            outside = (xs < bounds.min.x) | (xs > bounds.max.x) | (ts < bounds.min.t) | (ts > bounds.max.t)
            ts = np.where(outside, np.nan, ts)
        self.ax.plot(xs, ts, '-', color=self._color(command, '#E63946'), linewidth=2)

    def _draw_path(self, command, xlim, tlim):
        points = command.properties["path"].to_array()
        if command.properties["closed"]:
            points = np.vstack([points, points[:1]])
        self.ax.plot(points[:, 0], points[:, 1], '-', color=self._color(command, '#2A9D8F'), linewidth=1.5)

    def _draw_event(self, command, xlim, tlim):
        location = command.properties["location"]
        color = self._color(command, '#E76F51')
        self.ax.plot(location.x, location.t, 'o', color=color, markersize=6)
        if command.properties["text"]:
            self.ax.annotate(command.properties["text"], (location.x, location.t),
                             xytext=(5, 5), textcoords='offset points', color=color)

    def _draw_label(self, command, xlim, tlim):
        location = command.properties["location"]
        self.ax.text(location.x, location.t, command.properties["text"],
                     rotation=command.properties["rotation"],
                     color=self._color(command, '#264653'))


# ============================================================================
# EXAMPLE SCRIPTS
# ============================================================================

def example_moving_observer() -> str:
    """Example: inertial observer at half the speed of light"""
    return """
// An observer moving at 0.5c through the origin
obs1 = [observer velocity 0.5];

axes;
grid;
worldline obs1, "red";
event (dToX(0, obs1), dToT(0, obs1)), text: "d = 0";

print "t = " + dToT(0, obs1) + ", x = " + dToX(0, obs1) +
      ", tau = " + dToTau(0, obs1) + ", v = " + dToV(0, obs1);
"""


def example_accelerating_intersection() -> str:
    """Example: a line of simultaneity meets an accelerating rocket"""
    return """
mover = [observer velocity 0.8];
rocket = [observer acceleration 0.5];

// Events the mover considers simultaneous with its own t' = 2
simultaneous = [line axis x mover offset 2];
meet = intersect(simultaneous, rocket);

axes;
axes mover, "gray";
worldline mover;
worldline rocket, "red";
line simultaneous;
event meet, text: "meet";

print "Intersection at " + meet;
print "Rocket velocity there: " + tToV(meet.t, rocket);
"""


def example_twin_paradox() -> str:
    """Example: twin paradox with an instantaneous turnaround"""
    return """
home = [observer velocity 0];
twin = [observer velocity 0 time 0,
                 velocity 0.6 tau 4,
                 velocity -0.6 tau 4,
                 velocity 0];

turn = [frame observer twin at tau 4];

axes;
grid;
worldline home, "blue";
worldline twin, "red";
line [line axis x turn], "gray";
event (tauToX(4, twin), tauToT(4, twin)), text: "turnaround";

reunion = tauToT(8, twin);
print "Reunion at t = " + reunion;
print "Home twin aged " + tToTau(reunion, home);
print "Travelling twin aged " + tToTau(reunion, twin);
"""


def example_boost_animation() -> str:
    """Example: animated boost of the diagram into a moving frame"""
    return """
animate v = 0 to 0.9 step 0.01;
animation control: "loop", reps: 90;

moving = [frame velocity v];
frame moving;

hypergrid;
axes;
axes moving, xLabel: "x'", tLabel: "t'", "purple";
grid moving;
"""


def example_light_clock() -> str:
    """Example: host controls, loops and a static counter"""
    return """
range speed = 0.5 from 0 to 0.95 label "Velocity";
toggle showGrid = true label "Show grid";
choice view = 0 choices "rest", "clock" label "Frame";
set printPrecision: 3;

clock = [observer velocity speed];
if (view == 1) frame clock;

axes;
if (showGrid) grid;
worldline clock;

for tick = 0 to 5 {
    event (tauToX(tick, clock), tauToT(tick, clock)), text: "tau = " + tick;
}

static runs = 0;
runs = runs + 1;
print "gamma = " + gamma(speed) + " after " + runs + " runs";
"""


EXAMPLES = {
    'moving_observer': example_moving_observer,
    'accelerating_intersection': example_accelerating_intersection,
    'twin_paradox': example_twin_paradox,
    'boost_animation': example_boost_animation,
    'light_clock': example_light_clock,
}


def run_example(example_name: str = "moving_observer",
                bindings: Optional[Dict[str, Any]] = None,
                frame_number: Optional[int] = None,
                show_plot: bool = False,
                save_to: Optional[str] = None) -> dict:
    """
    Run a built-in example script

    Args:
        example_name: Name of example
        bindings: Control variable values
        frame_number: Animation frame to evaluate
        show_plot: Whether to open a preview window
        save_to: Save the preview image to this file

    Returns:
        Dictionary with compiler, compilation and run results
    """
    if example_name not in EXAMPLES:
        raise ValueError(f"Unknown example: {example_name}. Choose from {list(EXAMPLES.keys())}")

    compiler = SpacetimeCompiler(EngineOptions(print_sink=print))
    compiled = compiler.compile_dsl(EXAMPLES[example_name]())
    if not compiled['success']:
        print(f"Compilation failed: {format_error(compiled['error'])}")
        return {'compiler': compiler, 'compiled': compiled, 'run': None}

    outcome = compiler.run(bindings, frame_number)
    if not outcome['success']:
        print(f"Execution failed: {format_error(outcome['error'])}")
        return {'compiler': compiler, 'compiled': compiled, 'run': outcome}

    if show_plot or save_to:
        preview = DiagramPreview()
        preview.render(outcome['result'], title=example_name.replace('_', ' ').title())
        if save_to:
            preview.save(save_to)
        if show_plot:
            plt.show()
        preview.close()

    return {'compiler': compiler, 'compiled': compiled, 'run': outcome}


def format_error(error: Dict[str, Any]) -> str:
    if error.get('line'):
        return f"{error['kind']} at line {error['line']}, column {error['column']}: {error['message']}"
    return f"{error['kind']}: {error['message']}"


# ============================================================================
# COMMAND LINE
# ============================================================================

def parse_binding(text: str) -> Tuple[str, Any]:
    """Parse NAME=VALUE into a control binding"""
    if '=' not in text:
        raise ValueError(f"Expected NAME=VALUE, got '{text}'")
    name, raw = text.split('=', 1)
    raw = raw.strip()
    if raw.lower() in ('true', 'false'):
        return name.strip(), raw.lower() == 'true'
    try:
        return name.strip(), float(raw)
    except ValueError:
        return name.strip(), raw


def main(argv: Optional[List[str]] = None) -> int:
    """Command line interface for SpacetimeDSL"""
    import argparse

    parser = argparse.ArgumentParser(
        prog='spacetime-dsl',
        description=f'SpacetimeDSL v{__version__} - spacetime diagrams from scripts',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a built-in example and print its output
  spacetime-dsl --example twin_paradox

  # Evaluate frame 40 of an animation and save a preview
  spacetime-dsl --example boost_animation --frame 40 --save boost.png

  # Run a script with control values and dump the drawing commands
  spacetime-dsl --file diagram.st --set speed=0.8 --set showGrid=false --json
        """
    )

    parser.add_argument('--file', type=str, help='Script file to run')
    parser.add_argument('--example', type=str, choices=sorted(EXAMPLES), help='Run a built-in example')
    parser.add_argument('--list-examples', action='store_true', help='List the built-in examples')
    parser.add_argument('--set', dest='bindings', action='append', default=[], metavar='NAME=VALUE',
                        help='Bind a control variable (repeatable)')
    parser.add_argument('--frame', type=int, help='Animation frame number (1-based)')
    parser.add_argument('--json', action='store_true', help='Print the drawing commands as JSON')
    parser.add_argument('--plot', action='store_true', help='Show a matplotlib preview')
    parser.add_argument('--save', type=str, help='Save the preview image to a file')
    parser.add_argument('--tokens', action='store_true', help='Print the token stream')
    parser.add_argument('--hcode', action='store_true', help='Print the compiled HCode')

    args = parser.parse_args(argv)

    if args.list_examples:
        for name in sorted(EXAMPLES):
            print(f"{name:28s} {EXAMPLES[name].__doc__}")
        return 0

    if args.example:
        source = EXAMPLES[args.example]()
        title = args.example.replace('_', ' ').title()
    elif args.file:
        try:
            with open(args.file, 'r', encoding='utf-8') as f:
                source = f.read()
        except FileNotFoundError:
            print(f"Error: File '{args.file}' not found")
            return 1
        title = args.file
    else:
        parser.print_help()
        return 0

    try:
        bindings = dict(parse_binding(b) for b in args.bindings)
    except ValueError as e:
        print(f"Error: {e}")
        return 2

    compiler = SpacetimeCompiler(EngineOptions(print_sink=None if args.json else print))
    compiled = compiler.compile_dsl(source)

    if args.tokens:
        for token in compiler.tokens:
            print(repr(token))

    if not compiled['success']:
        print(f"Compilation failed: {format_error(compiled['error'])}")
        return 1

    if args.hcode:
        print(compiler.program.dump())

    with warnings.catch_warnings():
        warnings.simplefilter('ignore')
        outcome = compiler.run(bindings, args.frame)

    if not outcome['success']:
        print(f"Execution failed: {format_error(outcome['error'])}")
        return 1

    result = outcome['result']
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"{len(result.commands)} drawing commands, "
              f"{result.instructions_executed} instructions executed")

    if args.plot or args.save:
        preview = DiagramPreview()
        preview.render(result, title=title)
        if args.save:
            preview.save(args.save)
            print(f"Preview saved to {args.save}")
        if args.plot:
            plt.show()
        preview.close()

    return 0


# ============================================================================
# MODULE EXPORTS
# ============================================================================

__all__ = [
    'SpacetimeCompiler',
    'DiagramPreview',
    'EXAMPLES',
    'run_example',
    'format_error',
    'parse_binding',
    'main',
]


if __name__ == "__main__":
    sys.exit(main())
