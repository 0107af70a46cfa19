"""
Assignment

Employee directory access and candidate resolution for issue assignment.
"""

from .directory import Employee, EmployeeDirectory, InMemoryDirectory, YamlDirectory
from .resolver import AssignmentResolver

__all__ = [
    "Employee",
    "EmployeeDirectory",
    "InMemoryDirectory",
    "YamlDirectory",
    "AssignmentResolver",
]
