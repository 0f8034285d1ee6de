"""Ambient plumbing: settings, logging, cancellation and confined reads."""
