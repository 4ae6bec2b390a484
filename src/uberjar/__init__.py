"""Build self-contained WildFly Swarm uber-jars."""

from __future__ import annotations

__version__ = "0.1.0"
