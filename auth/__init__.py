"""auth/ -- Credential store, token issuer and auth gate for Taskboard.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/, tasks/, or client/.
api/ imports from auth/, not the other way around.
"""
