"""Trust simulator tick engine.

This package resolves single ticks and replays finished runs:

  TickEngine: select, draw, apply and check for one agent tick.
  Playback: cooperative, cancellable cursor over precomputed frames.
"""
from trust_sim.engine.playback import Playback
from trust_sim.engine.tick_engine import TickEngine, TickOutcome

__all__ = ["Playback", "TickEngine", "TickOutcome"]
