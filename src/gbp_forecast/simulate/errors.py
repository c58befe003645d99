# src/gbp_forecast/simulate/errors.py
"""Errors raised by the branching process simulator."""


class ConfigurationError(ValueError):
    """Malformed or inconsistent model inputs. Fatal, never retried."""


class BreakdownMemoryError(MemoryError):
    """The requested age/type breakdown does not fit in memory.

    Run again with ``keep_breakdown=False`` to get the summary matrices only.
    """

    def __init__(self, requested_bytes, limit_bytes=None):
        self.requested_bytes = int(requested_bytes)
        self.limit_bytes = limit_bytes
        if limit_bytes is None:
            detail = f"allocation of {self.requested_bytes} bytes failed"
        else:
            detail = f"{self.requested_bytes} bytes requested, limit is {int(limit_bytes)} bytes"
        super().__init__(
            f"Age/type breakdown too large ({detail}); "
            "use keep_breakdown=False for active/total cases only"
        )
