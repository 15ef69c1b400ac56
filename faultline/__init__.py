"""
Faultline - error ingestion, grouping and AI-assisted analysis.

Services:
- ingestion: Sentry-compatible endpoint that stores raw error events
- processing: worker that groups events into issues and triggers analysis
- api: read access to events, groups and the AI analysis cache
"""

__version__ = "0.1.0"
