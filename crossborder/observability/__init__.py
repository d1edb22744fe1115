"""
Observability helpers shared across the orchestrator (correlation ids, redaction).
"""
