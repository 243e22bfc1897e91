"""Balance board acquisition and trial recording.

The :mod:`core` package holds the session engine (calibration, the session
state machine and its event queue), :mod:`dataio` owns the CSV trial files,
and :mod:`sensors`/:mod:`remote` deliver normalised board samples.
Front-ends (:mod:`console`, :mod:`gui`) only translate operator input into
commands and engine notices into text.
"""

__version__ = "0.3.0"
