"""RollCall - attendance check-in engine (QR scan + manual entry)."""

__version__ = "0.3.0"
