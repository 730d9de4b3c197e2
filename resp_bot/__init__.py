# -*- coding: utf-8 -*-
"""
Ответственности: реестр, предложения, заявки и вызов ответственного
"""

from .registry import ResponsibilityRegistry, responsibility_registry

__all__ = ["ResponsibilityRegistry", "responsibility_registry"]
