"""Core building blocks: settings, logging, errors, permissions, approval workflow."""
