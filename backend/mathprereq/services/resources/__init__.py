"""
Educational resource discovery

Finds learning resources for math concepts on external sites (YouTube,
Khan Academy, MathWorld, general education sites), post-processes them
and upserts the survivors into the resource store.
"""

from mathprereq.services.resources.models import EducationalResource, ResourceKind, Difficulty
from mathprereq.services.resources.discovery import ResourceDiscoveryEngine, DiscoveryReport

__all__ = [
    "EducationalResource",
    "ResourceKind",
    "Difficulty",
    "ResourceDiscoveryEngine",
    "DiscoveryReport",
]
