"""bandscore: exam attempt entitlement and IELTS-style band scoring service."""

__version__ = "1.0.0"
