"""
Exception formatting and logging helpers shared by the proxy and the relay.

Both helpers are used on error paths, so neither of them may raise: a broken
``__str__`` on an upstream exception must not turn a contained per-request or
per-connection failure into a crash.
"""

import logging


def _safe_str(obj) -> str:
    """Convert an object to string, falling back to repr and then to the type name."""
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    """Return the members of an exception group, or an empty list."""
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception: BaseException) -> str:
    """
    Describe an exception in one line for client-facing error bodies.

    httpx raises several transport errors with an empty message (timeouts in
    particular), so the exception type name is used when the message is blank.
    Exception groups are flattened into ``"<main> (Sub-exceptions: a; b)"``.

    Args:
        exception: The exception to describe

    Returns:
        A non-empty description
    """
    try:
        if exception is None:
            return "None"

        message = _safe_str(exception).strip() or type(exception).__name__

        sub_exceptions = _sub_exceptions(exception)
        if not sub_exceptions:
            return message

        parts = []
        for sub_exc in sub_exceptions:
            sub_type = type(sub_exc).__name__
            sub_message = _safe_str(sub_exc).strip()
            parts.append(f"{sub_type}: {sub_message}" if sub_message else sub_type)
        return f"{message} (Sub-exceptions: {'; '.join(parts)})"
    except Exception:
        try:
            return f"<{type(exception).__name__} (formatting failed)>"
        except Exception:
            return "<exception (all formatting failed)>"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception, including each sub-exception when it is an exception group.

    Starlette runs WebSocket receive/send inside anyio task groups, so relay
    transport failures frequently surface as groups. This function never
    raises, even when the logger or the exception object is broken.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g. "[Relay]", "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        safe_prefix = _safe_str(prefix) if prefix is not None else ""
        sub_exceptions = _sub_exceptions(exception)

        if not sub_exceptions:
            logger.log(
                level,
                f"{safe_prefix} Exception: {_safe_str(exception)}",
                exc_info=exception if isinstance(exception, BaseException) else False,
            )
            return

        logger.log(
            level,
            f"{safe_prefix} Exception with {len(sub_exceptions)} sub-exceptions: "
            f"{_safe_str(exception)}",
        )
        for i, sub_exc in enumerate(sub_exceptions):
            try:
                logger.log(
                    level,
                    f"{safe_prefix} Sub-exception {i + 1}: "
                    f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}",
                    exc_info=sub_exc if isinstance(sub_exc, BaseException) else False,
                )
            except Exception:
                continue
    except Exception:
        try:
            logger.log(logging.ERROR, "Exception logging failed")
        except Exception:
            # Nothing left to report to
            pass
