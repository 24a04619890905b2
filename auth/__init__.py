"""auth/ -- Credential and token lifecycle core for tokengate.

Password hashing, access-token signing, refresh-token rotation, the pluggable
credential store, and the AuthService that composes them.

Layer rule: auth/ imports only stdlib + third-party libraries (and core/ for
Settings, inside auth.store.create_store only). api/ imports from auth/, not
the other way around. auth/dependencies.py is the one FastAPI-aware module.
"""
