"""archsim - Simulation runtime for architecture graphs.

archsim turns a visual architecture design (API bindings, function blocks,
data models, queues, infrastructure and service boundaries) into something
that can be deployed in-process and exercised with simulated requests.

Layers:
    core/       Pure logic (graph model, planner, analyzers, interpreter, router)
    server/     Runtime engine and progress events
    transport/  HTTP adapter (aiohttp)
    frontends/  User interfaces (CLI)

Quick Start:
    >>> from archsim.server import RuntimeEngine
    >>>
    >>> engine = RuntimeEngine()
    >>> engine.deploy_payload(payload)
    >>> result = engine.dispatch("GET", "/health")
    >>> result.status, result.body
    (200, {'ok': True})
"""

from archsim.__version__ import __version__
from archsim.core import (
    CyclicGraphError,
    GraphCollection,
    MalformedGraphError,
    StepExecutionError,
)

__all__ = [
    "CyclicGraphError",
    "GraphCollection",
    "MalformedGraphError",
    "StepExecutionError",
    "__version__",
]
