#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
StaffBot - Discord бот для управления персоналом сервера
Включает в себя:
- Promote Bot: временные и постоянные повышения, баны, журнал
- Apply Bot: заявки на администрацию
- Resp Bot: ответственности, предложения и вызов ответственных
"""

import asyncio
import logging

from dotenv import load_dotenv

# Загрузка переменных окружения из .env файла
load_dotenv()

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler()]
)

logger = logging.getLogger("staffbot")


def main():
    """Главная функция запуска"""
    from staff_bot.main import start_bot_with_reconnect

    logger.info("🤖 Запуск StaffBot...")
    try:
        asyncio.run(start_bot_with_reconnect())
    except KeyboardInterrupt:
        logger.info("🤖 Discord бот остановлен пользователем")
    except Exception as e:
        logger.error(f"❌ Необработанное исключение в main(): {e}")
        raise


if __name__ == "__main__":
    main()
