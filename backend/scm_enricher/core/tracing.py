"""
Tracing Context - Task-safe context management for enrichment runs.

This module provides a centralized way to carry run and entry identifiers
through concurrent enrichment coroutines. It uses Python's contextvars, so
every asyncio task sees its own copy.

Usage:
    # Set context at the start of a run
    TracingContext.set(run_id="abc-123")

    # Narrow it down per catalog entry (inside the entry's own task)
    TracingContext.set(artifact="io.quarkiverse:quarkus-foo::jar:1.0.0")

    # Get context (automatically added to JSONFormatter logs)
    ctx = TracingContext.get()

    # Generate prefix for manual logging
    prefix = TracingContext.get_log_prefix()  # "[run=abc-123]"

    # Clear context at the end
    TracingContext.clear()
"""

import uuid
from contextvars import ContextVar
from typing import Dict

_run_id: ContextVar[str] = ContextVar("run_id", default="")
_artifact: ContextVar[str] = ContextVar("artifact", default="")
_repository: ContextVar[str] = ContextVar("repository", default="")


class TracingContext:
    """Task-safe tracing context for enrichment runs."""

    @staticmethod
    def set(
        run_id: str = "",
        artifact: str = "",
        repository: str = "",
    ) -> None:
        """Set tracing context for current execution."""
        if run_id:
            _run_id.set(run_id)
        if artifact:
            _artifact.set(artifact)
        if repository:
            _repository.set(repository)

    @staticmethod
    def get() -> Dict[str, str]:
        """Get current tracing context as dict."""
        return {
            "run_id": _run_id.get(),
            "artifact": _artifact.get(),
            "repository": _repository.get(),
        }

    @staticmethod
    def get_run_id() -> str:
        """Get current run ID."""
        return _run_id.get()

    @staticmethod
    def generate_run_id() -> str:
        """Generate a new run ID."""
        return str(uuid.uuid4())

    @staticmethod
    def get_log_prefix() -> str:
        """Get log prefix with the run ID for manual logging."""
        run_id = _run_id.get()
        if run_id:
            return f"[run={run_id[:8]}]"
        return ""

    @staticmethod
    def clear() -> None:
        """Clear all tracing context."""
        _run_id.set("")
        _artifact.set("")
        _repository.set("")
