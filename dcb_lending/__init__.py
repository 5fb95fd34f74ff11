"""DCB lending operational scripts (Bank-A / Bank-B line-of-credit tooling)."""

__version__ = "0.1.0"
