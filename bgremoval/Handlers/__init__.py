"""Adapters for the collaborators the core treats as opaque: device, detectors, window."""
