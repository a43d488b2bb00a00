"""auth/ -- Authentication and authorization package for the notice board.

Credential checks, the session store, role guards and the user repository.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from board/ or web/. web/ imports from auth/, not the
other way around.
"""
