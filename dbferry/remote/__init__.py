# -*- coding: utf-8 -*-

from .client import ApiClient
from .multi import MultiEnvironmentSync

__all__ = ["ApiClient", "MultiEnvironmentSync"]
