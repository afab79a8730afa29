"""Core application plumbing: settings, logging, metrics, lifecycle."""
