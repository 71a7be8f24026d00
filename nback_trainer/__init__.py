"""Dual N-Back working-memory trainer.

Deterministic trial/scoring/difficulty logic lives in the core modules;
``nback_trainer.app`` is a thin pygame shell on top of it.
"""

__version__ = "0.1.0"
