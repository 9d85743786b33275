"""auth/ -- Authentication subsystem for Notebox.

Password hashing, JWT session tokens, TOTP second factor, and OAuth2
federation (Google, GitHub), composed by AuthService.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, web/, notes/, or files/.
api/ and web/ import from auth/, not the other way around.
"""
