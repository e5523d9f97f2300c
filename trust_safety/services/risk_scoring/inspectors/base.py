# trust_safety/services/risk_scoring/inspectors/base.py
"""
Базовый класс для всех инспекторов текста.
"""
from abc import ABC, abstractmethod
from typing import List

from trust_safety.services.risk_scoring.models import RiskSignal


class BaseInspector(ABC):
    """
    Базовый класс для инспекторов риска.

    Каждый инспектор анализирует определенный аспект текста и возвращает
    найденные сигналы. Инспекторы чистые: без I/O и без состояния между вызовами.
    """

    @abstractmethod
    def inspect(self, text: str, normalized: str) -> List[RiskSignal]:
        """
        Выполняет проверку.

        Args:
            text: Исходный текст
            normalized: Текст в нижнем регистре со схлопнутыми пробелами

        Returns:
            Список сигналов в порядке обнаружения
        """
