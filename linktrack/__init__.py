"""Link Tracker - short trackable links with click analytics."""

__version__ = "0.1.0"
