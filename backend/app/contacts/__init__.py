"""
contacts — Registered alert recipients.

Sub-modules:
    models      — ORM table (``usuarios``)
    directory   — snapshot reads, registration and removal
"""
