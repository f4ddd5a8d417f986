"""Route blueprints for the web application."""

from .jobs import jobs_bp

__all__ = [
    "jobs_bp",
]
