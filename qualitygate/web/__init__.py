"""HTTP interface for the quality scoring engine."""
