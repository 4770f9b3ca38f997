"""feedback/ -- Feedback submissions and their admin-managed status.

Layer rule: feedback/ imports only stdlib, third-party libraries, core/, and
audit/ (status changes and deletions are written together with their audit
entry). It does NOT import from api/ or auth/.
"""
