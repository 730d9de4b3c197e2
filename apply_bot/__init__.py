# -*- coding: utf-8 -*-
"""
Заявки на администрацию: номинация, одобрение, отклонение с кулдауном
"""

from .applications import ApplicationStore, application_store

__all__ = ["ApplicationStore", "application_store"]
