"""
QR token core: issue and verify short-lived, single-use signed tokens that
bind a QR code to a record, with an append-only audit trail.
"""

__version__ = "0.1.0"
