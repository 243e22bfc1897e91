"""Balance board sample sources and the driver bridge line format.

:mod:`balance_board` defines the normalised line protocol spoken by the
board driver bridge plus the sources that deliver :class:`RawSample`
objects to the session controller.
"""

from .balance_board import (
    BoardStatus,
    LineSampleSource,
    ProcessLineStream,
    SyntheticSampleSource,
    parse_line,
)

__all__ = [
    "BoardStatus",
    "LineSampleSource",
    "ProcessLineStream",
    "SyntheticSampleSource",
    "parse_line",
]
