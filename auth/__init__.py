"""auth/ -- Authentication and authorization package for SmartFeedback.

Layer rule: auth/ imports only stdlib, third-party libraries, core/, and
audit/ (privileged logins are audited at token issuance).
It does NOT import from api/ or feedback/.
api/ imports from auth/, not the other way around.
"""
