from .source_url import ValidationResult, normalize_source_url

__all__ = ["ValidationResult", "normalize_source_url"]
