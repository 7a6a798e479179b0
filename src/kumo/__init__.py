"""kumo - local development sessions for serverless workers.

Runs a worker locally or against the remote platform, keeps it registered
with the shared dev registry, and offers hotkeys to switch between the two.
"""

__version__ = "0.1.0"
