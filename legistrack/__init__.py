"""LegisTrack: track Congressional legislation with AI analysis."""
