from . import installation, watchers, highavailability, probes

__all__ = [
    "installation",
    "watchers",
    "highavailability",
    "probes",
]
