"""auth/ -- Accounts, password hashing, tokens and role checks for BusTrack.

Layer rule: auth/ imports from core/ and storage/ plus third-party libraries.
It does NOT import from api/ or fleet/.
api/ imports from auth/, not the other way around.
"""
