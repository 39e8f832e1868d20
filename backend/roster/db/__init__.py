"""Persistence utilities for the roster store."""

from .base import Base
from .models import CourseModel, EnrollmentModel, StudentModel
from .session import StoreGateway, build_engine

__all__ = [
    "Base",
    "CourseModel",
    "EnrollmentModel",
    "StoreGateway",
    "StudentModel",
    "build_engine",
]
