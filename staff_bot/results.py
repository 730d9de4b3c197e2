# -*- coding: utf-8 -*-
"""Результат операций менеджеров: успех, текст ошибки и данные"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class OperationResult:
    """Результат операции. Исключения наружу не пробрасываются"""
    success: bool
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, **data) -> "OperationResult":
        return cls(True, None, data)

    @classmethod
    def fail(cls, error: str, **data) -> "OperationResult":
        return cls(False, error, data)
