"""Ambient utilities: configuration, logging, failure tracking, frame-rate bookkeeping."""
