import re
from typing import Optional


class ValidationHelpers:
    @staticmethod
    def validate_email(email: str) -> bool:
        """Validate email format"""
        pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
        return re.match(pattern, email) is not None

    @staticmethod
    def validate_phone(phone: Optional[str]) -> bool:
        """Validate phone number format (flexible)"""
        if not phone:
            return True  # Optional field

        digits_only = re.sub(r"\D", "", phone)

        # Check if it's a reasonable length (7-15 digits)
        return 7 <= len(digits_only) <= 15

    @staticmethod
    def normalize_email(email: str) -> str:
        """Trim and case-fold an email; no alias or dot handling"""
        return email.strip().lower()

    @staticmethod
    def clean_text(value: Optional[str]) -> Optional[str]:
        """Strip whitespace, mapping blank strings to None"""
        if value is None:
            return None
        value = value.strip()
        return value or None
