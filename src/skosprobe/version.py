"""Version information for :mod:`skosprobe`."""

VERSION = "0.1.0"
