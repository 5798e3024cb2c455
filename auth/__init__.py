"""auth/ -- Server-side session pipeline for SessionKit.

Credential store, token service, session guard and login history ledger.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or authclient/.
api/ imports from auth/, not the other way around.
"""
