"""
Cortex - run several isolated instances of one compose-based dev environment.

Each instance gets its own namespace (compose project name and container name
prefix) and, when needed, a host port offset, applied through a generated
compose override file and recorded in a per-directory lock file.
"""

__version__ = "1.4.0"
