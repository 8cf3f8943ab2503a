"""Session domain services: code generation, timers, ranking and the engine.

This package holds the in-memory authority over live buzzer sessions. HTTP
routes and socket handlers call into ``SessionEngine`` and never mutate
session records themselves, keeping transport concerns separated from the
game mechanics.
"""
from .engine import SessionEngine, session_update
from .timers import BackgroundTimerService, ServerClock, TimerHandle

__all__ = ['SessionEngine', 'session_update', 'BackgroundTimerService', 'ServerClock', 'TimerHandle']
