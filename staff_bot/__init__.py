# -*- coding: utf-8 -*-
"""
Общие модули бота: хранилище, сроки, статистика активности и запуск
"""
