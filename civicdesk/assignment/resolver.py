"""
Assignment Resolver

Resolves the pool of employees eligible for an assignment in a department.
"""

import logging
from typing import List

from civicdesk.issues.models import Category
from civicdesk.issues.store import parse_category
from .directory import Employee, EmployeeDirectory

logger = logging.getLogger(__name__)


class AssignmentResolver:
    """
    Filters the employee directory by department.

    Results are never cached: the directory may change between calls.

    Example:
        resolver = AssignmentResolver(directory)
        pool = resolver.candidates_for(Category.WATER)
        if not pool:
            ...  # nobody to assign, disable assignment
    """

    def __init__(self, directory: EmployeeDirectory):
        self.directory = directory

    def candidates_for(self, department) -> List[Employee]:
        """
        Employees whose department equals the argument (possibly empty).

        Accepts a Category or its string value; unknown values raise
        ValidationError.
        """
        department = parse_category(department, "department")
        candidates = [
            e for e in self.directory.list_employees()
            if e.department == department
        ]
        if not candidates:
            logger.info(f"No employees available in department {department.value}")
        return candidates

    def validate(self, department, employee_id: str) -> bool:
        """True iff the employee is in the candidate pool for the department."""
        return any(e.id == employee_id for e in self.candidates_for(department))
