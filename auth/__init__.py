"""auth/ -- Session authentication, remember-me auto-login and role checks for AuthGate.

Layer rule: auth/ imports only stdlib + third-party libraries, plus core/
from auth/dependencies.py. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
