import re
from datetime import date
from typing import Optional

class ISBNValidator:
    """Lenient ISBN checks: format only, no checksum."""

    @staticmethod
    def normalize_isbn(raw: str) -> str:
        if raw is None:
            return ""
        s = re.sub(r"[^0-9Xx]", "", raw)
        return s.upper()

    @staticmethod
    def is_valid_isbn(isbn: str) -> bool:
        """ISBN-10: 9 digits then a digit or 'X'. ISBN-13: 13 digits."""
        if not isbn:
            return False
        s = ISBNValidator.normalize_isbn(isbn)
        if len(s) == 10:
            return s[:9].isdigit() and (s[9].isdigit() or s[9] == 'X')
        if len(s) == 13:
            return s.isdigit()
        return False

class TextValidator:
    """Basic checks on the free text a librarian or new user types in."""

    @staticmethod
    def validate_title(title: Optional[str]) -> bool:
        if title is None:
            return False
        return bool(title.strip())

    @staticmethod
    def validate_username(username: Optional[str]) -> bool:
        # no spaces, must not be digits only
        if username is None:
            return False
        t = username.strip()
        if not t or any(c.isspace() for c in t):
            return False
        return not t.isdigit()

    @staticmethod
    def validate_password(password: Optional[str]) -> bool:
        return password is not None and bool(password.strip())

    @staticmethod
    def validate_year(year: int) -> bool:
        return 0 < year <= date.today().year + 1
