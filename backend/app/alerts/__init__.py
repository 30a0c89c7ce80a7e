"""
alerts — Official flood-warning notification system.

Sub-modules:
    channels/       — Per-channel delivery backends (SMS, email)
    alert_service   — Cycle orchestration: poll, fan-out, per-send isolation
    rate_limiter    — Per-recipient cooldown windows (alerta / cadastro)
    scheduler       — In-process interval jobs
    models          — Data structures shared across the system
"""
