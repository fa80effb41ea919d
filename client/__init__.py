"""client/ -- HTTP client and persisted session context for Taskboard.

Layer rule: client/ imports only stdlib + third-party libraries.
It does NOT import from api/, auth/, tasks/ or core/; it talks to the
server over HTTP only.
"""
