"""Config validation and field-mapping helpers."""
import re
from typing import Any, Dict, Iterable
from urllib.parse import urlparse

from examforge.integrations.errors import IntegrationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ConfigValidator:
    """Checks on integration configuration maps."""

    @staticmethod
    def validate_required(config: Dict[str, Any], required_fields: Iterable[str]) -> None:
        """Raise INVALID_CONFIG naming every required field that is absent or empty."""
        missing = [field for field in required_fields if not config.get(field)]
        if missing:
            raise IntegrationError(
                f"Missing required configuration fields: {', '.join(missing)}",
                "INVALID_CONFIG",
            )

    @staticmethod
    def validate_url(url: str) -> bool:
        if not isinstance(url, str):
            return False
        try:
            parsed = urlparse(url)
        except (TypeError, ValueError):
            return False
        return bool(parsed.scheme and parsed.netloc)

    @staticmethod
    def validate_email(email: str) -> bool:
        return bool(email and EMAIL_RE.match(email))


class DataTransformer:
    """Map external records onto internal field names."""

    @staticmethod
    def get_nested_value(data: Dict[str, Any], path: str) -> Any:
        current: Any = data
        for key in path.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        return current

    @classmethod
    def transform_user_data(cls, external_user: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
        """Copy ``mapping`` values (dotted paths into ``external_user``) to their internal keys."""
        transformed = {}
        for internal_field, external_field in mapping.items():
            value = cls.get_nested_value(external_user, external_field)
            if value is not None:
                transformed[internal_field] = value
        return transformed

    @staticmethod
    def normalize_grade(score: float, max_score: float, target_max: float = 100) -> float:
        if max_score == 0:
            return 0
        return round(score / max_score * target_max, 2)
