"""audit/ -- Append-only log of privileged actions for SmartFeedback.

Layer rule: audit/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, auth/, or feedback/. auth/ and feedback/
write through AuditStore; api/ reads through it.
"""
