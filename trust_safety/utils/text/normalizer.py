# trust_safety/utils/text/normalizer.py
"""
Нормализация текста для антискам-проверок.
"""
import re


def normalize_whitespace(text: str) -> str:
    """
    Нормализует пробельные символы.

    - Заменяет множественные пробелы на один
    - Заменяет табы и переносы строк на пробелы
    - Удаляет пробелы в начале и конце
    """
    if not text:
        return ""

    return re.sub(r"\s+", " ", text).strip()


def normalize_for_scan(text: str) -> str:
    """Нижний регистр + схлопнутые пробелы: форма, по которой ищутся ключевые фразы."""
    if not text:
        return ""
    return normalize_whitespace(text.lower())
