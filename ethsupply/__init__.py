"""ETH supply analytics: units, time frames, a key/value store, price recording and a JSON API."""

__version__ = "0.1.0"