from trust_safety.utils.text.normalizer import normalize_for_scan, normalize_whitespace

__all__ = ["normalize_for_scan", "normalize_whitespace"]
