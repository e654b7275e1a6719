"""
COFIN Back-Office Core

Account opening with OTP-gated approval, cash and field operation recording,
double-entry journal posting and an append-only audit trail, all persisted
to a single JSON document.
"""

__version__ = "1.0.0"
