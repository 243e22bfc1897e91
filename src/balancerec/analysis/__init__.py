"""Signal bookkeeping that never alters recorded values.

:mod:`rate` estimates the board's delivery rate from arrival stamps so the
front-ends can report sample periods and per-session throughput.
"""

from .rate import RateController

__all__ = ["RateController"]
