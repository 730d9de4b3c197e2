# -*- coding: utf-8 -*-
"""
Плоское JSON-хранилище: один файл на каждую сущность.
Запись атомарная: сначала временный файл, затем замена.
"""

import copy
import json
import logging
import os
import time
from typing import Any

logger = logging.getLogger("staffbot.storage")

SCRIPT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR = os.getenv("STAFFBOT_DATA_DIR", os.path.join(SCRIPT_DIR, "data"))


def now_ms() -> int:
    """Текущее время в миллисекундах (epoch)"""
    return int(time.time() * 1000)


def read_json(path: str, default: Any) -> Any:
    """Прочитать JSON файл. При отсутствии или ошибке возвращает копию default"""
    if not os.path.exists(path):
        return copy.deepcopy(default)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except Exception as e:
        logger.error(f"❌ Ошибка чтения {path}: {e}")
        return copy.deepcopy(default)


def write_json(path: str, data: Any) -> bool:
    """Атомарно записать JSON файл. Никогда не бросает исключение"""
    tmp_path = f"{path}.tmp"
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
        return True
    except Exception as e:
        logger.error(f"❌ Ошибка записи {path}: {e}")
        try:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        except OSError:
            pass
        return False


def ensure_json(path: str, default: Any) -> None:
    """Создать файл с содержимым по умолчанию, если его нет"""
    if not os.path.exists(path):
        if write_json(path, default):
            logger.info(f"💾 Создан файл данных {os.path.basename(path)}")
