"""School attendance core.

Organized by feature modules (attendance, otc, qr, biometric, consent) with
Protocol-based repositories for the REST backend and async service layers.
"""
