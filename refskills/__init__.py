"""Reference / skill registry service - Backend.

A small HTTP service that keeps:
- References: records keyed by a short identifier derived from their name.
- A shared skill catalog whose entries can be attached to references.

Access is gated by stateless JWTs at two trust levels (Normal, Admin).

Core concepts:
- A reference's key is derived, never chosen (see util/hashing.py).
- No reference ever points at a skill missing from the catalog.

See README for setup and usage.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
