"""Client and obligation matching for extracted documents."""

from app.services.matching.matcher import ClientMatch, Matcher, ObligationMatch

__all__ = ["ClientMatch", "Matcher", "ObligationMatch"]
