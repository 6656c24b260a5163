"""auth/ -- Authentication and authorization package for HomeInv.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/, audit/, or inventory/.
api/ imports from auth/, not the other way around. Collaborators such as the
Users table gateway are injected into auth/ objects, never imported.
"""
