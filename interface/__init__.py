"""
Interface package: talking to an external UCI engine.

Modules:
    uci     — Request framing, info/bestmove parsing, score perspective
    channel — Subprocess pipe to the engine with a non-blocking inbox
    client  — EvaluationClient: handshake, dedupe, stale-reply filtering
    service — EngineService: feeds engine replies into a GameSession
"""
