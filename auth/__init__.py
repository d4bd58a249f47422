"""auth/ -- Identity, credentials, sessions and authorization for TaskTrack.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/ or tracker/.
api/ imports from auth/, not the other way around.
"""
