"""
Rules package: decay-chess legality on top of python-chess.

Modules:
    constants — Decay durations, clocks, evaluation thresholds, delays
    freeze    — Shadow boards and the RulesAdapter (frozen pieces are inert)
    decay     — Per-color decay timers and frozen-square bookkeeping
"""
