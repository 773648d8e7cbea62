from mathprereq.models.query import QueryRecord
from mathprereq.models.resource import EducationalResourceRecord

__all__ = [
    "QueryRecord",
    "EducationalResourceRecord",
]
