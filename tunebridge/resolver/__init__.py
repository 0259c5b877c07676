"""Track resolution: the fallback strategy chain and quality selection"""

from .chain import ResolutionChain
from .quality import DEFAULT_QUALITY, pick_best_url

__all__ = ['ResolutionChain', 'DEFAULT_QUALITY', 'pick_best_url']
