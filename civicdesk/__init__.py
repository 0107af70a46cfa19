"""CivicDesk Package"""

__version__ = "0.1.0"


# Lazy imports to avoid loading boto3 for store-only users
def get_manager():
    from .issues.manager import IssueManager
    return IssueManager
