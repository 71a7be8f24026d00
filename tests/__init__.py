"""Test package for the N-Back trainer.

Core modules are driven with a fake millisecond clock and scripted symbol
sources so every timing and scoring path is deterministic. The pygame
smoke tests run headlessly using SDL's dummy drivers. Run ``pytest`` from
the project root.
"""
