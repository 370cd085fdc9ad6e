"""
YT Stock AI.

Extracts stock recommendations from YouTube video transcripts and meters
analyses per user on free and premium tiers.
"""

__version__ = "0.1.0"
