"""SERP Intelligence: rank tracking, movement analysis and cost-of-inaction reporting."""

__version__ = "1.0.0"
