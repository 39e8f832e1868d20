from .students import StudentRepository, students

__all__ = ["StudentRepository", "students"]
