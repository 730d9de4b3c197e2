# -*- coding: utf-8 -*-
"""
Система повышений: временные административные роли, запреты,
восстановление после возвращения участника
"""

from .manager import PromoteManager, promote_manager

__all__ = ["PromoteManager", "promote_manager"]
