"""
Session package: the interactive session state machine and what drives it.

Modules:
    models    — SessionStatus, MoveRecord, EvalResult, GameResult, SessionConfig
    state     — GameSession, the single owner of session state
    clock     — DecayClock, the 250 ms wall-clock tick thread
    scheduler — Delayed callbacks (auto-end, bot move delay)
"""
