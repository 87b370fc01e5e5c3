"""lockstep: coordinated multi-component releases for Python monorepos."""

__version__ = "0.1.0"
