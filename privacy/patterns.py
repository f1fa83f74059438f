import re

# Ordered most to least specific. Later matchers are suppressed over spans
# already claimed by an earlier one.
SENSITIVE_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("bearer_token", re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)),
    ("jwt_token", re.compile(r"eyJ[A-Za-z0-9\-._~+/]+=*")),
    ("api_key", re.compile(r"\b(?:sk-|pk-|rk-)[A-Za-z0-9]{20,}\b")),
    ("db_connection", re.compile(r"(?:mongodb|mysql|postgres(?:ql)?|sqlite|redis)://\S+", re.IGNORECASE)),
    ("email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")),
    ("credit_card", re.compile(r"\b(?:\d{4}[-\s]?){3}\d{4}\b")),
    ("ssn", re.compile(r"\b\d{3}-?\d{2}-?\d{4}\b")),
    ("password", re.compile(r"(?:password|pwd|pass)\s*[:=]\s*[\"']?[^\"'\s]+[\"']?", re.IGNORECASE)),
    ("secret", re.compile(r"secret\s*[:=]\s*[\"']?[^\"'\s]+[\"']?", re.IGNORECASE)),
    ("home_path", re.compile(r"/(?:Users|home)/[^/\s]+")),
    ("windows_path", re.compile(r"C:\\Users\\[^\\\s]+", re.IGNORECASE)),
    ("ip_address", re.compile(r"\b(?:[0-9]{1,3}\.){3}[0-9]{1,3}\b")),
    ("phone", re.compile(r"(?:\+?1[-.\s]?)?\(?[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}\b")),
]

# Standalone words only, scanned when no high-confidence pattern hit.
SENSITIVE_KEYWORDS: list[str] = [
    "confidential",
    "classified",
    "restricted",
    "ssn",
    "social security",
    "credit card",
    "bank account",
]
KEYWORD_PATTERNS: list[re.Pattern[str]] = [
    re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE) for keyword in SENSITIVE_KEYWORDS
]
KEYWORD_CONFIDENCE = 0.4
HIGH_CONFIDENCE = 0.7

CLASSIFICATION_KEYWORDS: dict[str, list[str]] = {
    "confidential": [
        "password",
        "secret",
        "private key",
        "credential",
        "ssn",
        "social security",
        "credit card",
        "bank account",
        "personal",
        "confidential",
        "sensitive",
        "api key",
        "access token",
        "classified",
        "restricted",
    ],
    "internal": [
        "project",
        "task",
        "meeting",
        "team",
        "company",
        "internal",
        "business",
        "strategy",
        "plan",
        "budget",
        "revenue",
    ],
    "public": [
        "documentation",
        "tutorial",
        "example",
        "demo",
        "public",
        "open source",
        "community",
        "help",
        "support",
    ],
}

PLACEHOLDERS: dict[str, str] = {
    "email": "[EMAIL_REDACTED]",
    "phone": "[PHONE_REDACTED]",
    "ssn": "[SSN_REDACTED]",
    "credit_card": "[CARD_REDACTED]",
    "api_key": "[API_KEY_REDACTED]",
    "bearer_token": "[TOKEN_REDACTED]",
    "jwt_token": "[JWT_REDACTED]",
    "password": "[PASSWORD_REDACTED]",
    "secret": "[SECRET_REDACTED]",
    "home_path": "[PATH_REDACTED]",
    "windows_path": "[PATH_REDACTED]",
    "ip_address": "[IP_REDACTED]",
    "db_connection": "[DB_CONNECTION_REDACTED]",
}
DEFAULT_PLACEHOLDER = "[REDACTED]"
RECORD_PLACEHOLDER = "[REDACTED - SENSITIVE DATA]"

# Output of an earlier redaction or anonymization pass. Never rescanned.
PLACEHOLDER_PATTERN = re.compile(r"\[[A-Z_]+(?: - [A-Z ]+)?\]")
TYPED_PLACEHOLDER_PATTERN = re.compile(r"\[[A-Z_]+_REDACTED\]")

# Anonymization: applied in order, before typed redaction.
ANONYMIZE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+\b"), "[NAME]"),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    (re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"), "[DATE]"),
    (re.compile(r"\b\d{4}-\d{2}-\d{2}\b"), "[DATE]"),
    (re.compile(r"(?:\+?1[-.\s]?)?\(?[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}\b"), "[PHONE]"),
]


def _digit_count(text: str) -> int:
    return sum(ch.isdigit() for ch in text)


def pattern_confidence(kind: str, match: str) -> float:
    """Confidence (0-1) that a raw pattern hit is really sensitive data."""
    if kind == "email":
        return 0.9 if "@" in match and "." in match else 0.6
    if kind == "phone":
        return 0.9 if _digit_count(match) == 10 else 0.7
    if kind == "ssn":
        return 0.95 if _digit_count(match) == 9 else 0.7
    if kind == "credit_card":
        return 0.9 if _digit_count(match) >= 13 else 0.6
    if kind == "api_key":
        return 0.9 if len(match) >= 32 else 0.6
    if kind in ("bearer_token", "jwt_token"):
        return 0.9
    if kind in ("password", "secret", "db_connection"):
        return 0.85
    return 0.6
