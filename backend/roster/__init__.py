"""Learner, course and enrollment record management over a relational store."""

from .entities import Enrollment, Learner, LearnerFields, Offering, OfferingSummary, SortKey
from .errors import ErrorKind, Failure, Outcome, RosterError
from .manager import RecordManager

__all__ = [
    "Enrollment",
    "ErrorKind",
    "Failure",
    "Learner",
    "LearnerFields",
    "Offering",
    "OfferingSummary",
    "Outcome",
    "RecordManager",
    "RosterError",
    "SortKey",
]
