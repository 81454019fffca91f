"""auth/ -- Authentication and authorization package for taskwarden.

Layer rule: auth/ imports only stdlib, third-party libraries and core.config.
It does NOT import from api/ or tasks/.
api/ imports from auth/, not the other way around.
"""
