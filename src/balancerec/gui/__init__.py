"""PySide6 front-end for the balance recorder.

The window in :mod:`main_window` mirrors the console commands with buttons
and shows engine notices; :mod:`application` owns the QApplication.
"""
