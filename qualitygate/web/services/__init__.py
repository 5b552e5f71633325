"""Web-layer services: job tracking and background job runs."""
