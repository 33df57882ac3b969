"""Test package for the Dual N-Back trainer.

Core tests (sequence generation, scoring, persistence) need no display.
The UI smoke tests run headlessly using pygame's dummy video driver to
avoid opening real windows. To run these tests, execute ``pytest`` from
the project root.
"""
