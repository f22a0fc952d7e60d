"""探测执行器模块"""

from .base import BaseProbe
from .http_probe import HTTPProbe, SUPPORTED_METHODS

__all__ = ['BaseProbe', 'HTTPProbe', 'SUPPORTED_METHODS']
