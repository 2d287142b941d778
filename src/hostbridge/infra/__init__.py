"""Low-level infrastructure and plumbing.

Public API: PtyProcess, configure, read_master, set_winsize, spawn_pty,
    trace_span
Internal: otel_tracing, pty_spawn
"""

from hostbridge.infra.otel_tracing import configure, trace_span
from hostbridge.infra.pty_spawn import PtyProcess, read_master, set_winsize, spawn_pty

__all__ = [
    "PtyProcess",
    "configure",
    "read_master",
    "set_winsize",
    "spawn_pty",
    "trace_span",
]
