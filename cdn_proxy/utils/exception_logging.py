"""
Exception logging helpers for the proxy pipeline.

Upstream failures are logged with their full cause chain while the caller
only ever sees a generic message; these helpers never raise themselves.
"""

import logging


def _safe_str(obj) -> str:
    """
    Convert an object to string, falling back to repr and then the type name.

    Args:
        obj: The object to convert

    Returns:
        A string representation that is always available
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _cause_chain(exception: BaseException) -> list:
    """Collect ``__cause__``/``__context__`` links, guarding against cycles."""
    chain = []
    seen = {id(exception)}
    current = exception.__cause__ or exception.__context__
    while current is not None and id(current) not in seen:
        chain.append(current)
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return chain


def format_exception_message(exception: BaseException) -> str:
    """
    Format an exception and its causes as one line.

    Args:
        exception: The exception to format

    Returns:
        ``"Type: message <- CauseType: cause"``
    """
    if exception is None:
        return "None"
    try:
        parts = [f"{type(exception).__name__}: {_safe_str(exception)}"]
        for cause in _cause_chain(exception):
            parts.append(f"{type(cause).__name__}: {_safe_str(cause)}")
        return " <- ".join(parts)
    except Exception:
        return f"<{type(exception).__name__} (formatting failed)>"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its cause chain and traceback.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        logger.log(
            level,
            f"{prefix} Exception: {format_exception_message(exception)}",
            exc_info=exception if exception is not None else False,
        )
    except Exception:
        # Logging must not take the request down with it
        try:
            logger.log(level, f"{prefix} Exception (logging failed)")
        except Exception:
            pass
