from .langfuse import (
    LangfuseConfigError,
    initialize_langfuse,
    shutdown_langfuse,
    start_langfuse_generation,
    start_langfuse_span,
)

__all__ = [
    "LangfuseConfigError",
    "initialize_langfuse",
    "shutdown_langfuse",
    "start_langfuse_generation",
    "start_langfuse_span",
]
