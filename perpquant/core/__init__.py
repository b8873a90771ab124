"""perpquant.core

Shared plumbing: errors, configuration, logging, durations.
"""
