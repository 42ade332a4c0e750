"""Routers for the public functions API."""

from . import integrations, matching, payments, reservations, resume_reviews, system

__all__ = ["integrations", "matching", "payments", "reservations", "resume_reviews", "system"]
