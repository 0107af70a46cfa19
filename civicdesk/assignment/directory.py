"""
Employee Directory

Read-only view of municipal employees. Employee records are owned by the
identity collaborator; this package never mutates them.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Any

import yaml

from civicdesk.issues.models import Category

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Employee:
    """A municipal employee who can receive assignments."""
    id: str
    name: str
    department: Category

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "department": self.department.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Employee":
        return cls(
            id=str(data["id"]),
            name=data.get("name", str(data["id"])),
            department=Category(data["department"]),
        )


class EmployeeDirectory(ABC):
    """Source of employee records."""

    @abstractmethod
    def list_employees(self) -> List[Employee]:
        """Return the current employee snapshot."""

    def find(self, employee_id: str) -> Optional[Employee]:
        for employee in self.list_employees():
            if employee.id == employee_id:
                return employee
        return None


class InMemoryDirectory(EmployeeDirectory):
    """Directory backed by a plain list (tests, embedding)."""

    def __init__(self, employees: Iterable[Employee] = ()):
        self._employees = list(employees)

    def list_employees(self) -> List[Employee]:
        return list(self._employees)

    def replace(self, employees: Iterable[Employee]) -> None:
        """Swap the snapshot (simulates the identity service changing)."""
        self._employees = list(employees)


class YamlDirectory(EmployeeDirectory):
    """
    Loads employees from a YAML file.

    The file is re-read on every call so edits are picked up without a
    restart.

    Example file:
        employees:
          - id: emp-001
            name: Thabo Mokoena
            department: roads
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def list_employees(self) -> List[Employee]:
        if not self.path.exists():
            logger.warning(f"Employee directory not found: {self.path}")
            return []

        with open(self.path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            logger.warning(f"Employee directory {self.path} is not a mapping, ignoring it")
            return []
        entries = data.get("employees") or []
        if not isinstance(entries, list):
            logger.warning(f"'employees' in {self.path} is not a list, ignoring it")
            return []

        employees = []
        for entry in entries:
            if not isinstance(entry, dict):
                logger.error(f"Skipping invalid employee entry {entry!r}: not a mapping")
                continue
            try:
                employees.append(Employee.from_dict(entry))
            except (KeyError, ValueError) as e:
                logger.error(f"Skipping invalid employee entry {entry!r}: {e}")

        logger.debug(f"Loaded {len(employees)} employees from {self.path}")
        return employees
