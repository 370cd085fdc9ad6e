"""
Core modules for YT Stock AI.

This package contains video identifier extraction, usage metering,
the recommendation cache and the analysis workflow.
"""
