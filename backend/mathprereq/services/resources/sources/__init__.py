from mathprereq.services.resources.sources.base import ResourceSource
from mathprereq.services.resources.sources.youtube import YouTubeSource
from mathprereq.services.resources.sources.khan_academy import KhanAcademySource
from mathprereq.services.resources.sources.mathworld import MathWorldSource
from mathprereq.services.resources.sources.general_sites import GeneralSitesSource

# Merge order used by the discovery engine
DEFAULT_SOURCES = (YouTubeSource, KhanAcademySource, MathWorldSource, GeneralSitesSource)

__all__ = [
    "ResourceSource",
    "YouTubeSource",
    "KhanAcademySource",
    "MathWorldSource",
    "GeneralSitesSource",
    "DEFAULT_SOURCES",
]
