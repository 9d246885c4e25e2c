# TenantSQL - Value Type Rules
# ============================
"""
Value Type Rules
================
Format checks on bound values. The expected format is inferred from the
parameter name first (customerEmail, zipCode, unitPrice) and, for string
and numeric values with an uninformative name, from the value's shape.
Card numbers hold 13 to 16 digits and must pass the Luhn checksum; phone
numbers hold 10 to 15 digits.

Card numbers and social security numbers are flagged as sensitive data
whenever a value looks like one, valid or not. An SSN is only recognized
by shape in its dashed form (123-45-6789); a bare nine-digit value under
an uninformative name is indistinguishable from an ordinary number and is
not flagged. Name the parameter (ssn, socialSecurity) to have it checked.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, List, Optional
from urllib.parse import urlparse

from .models import ValidationCategory, ValidationIssue, ValidationSeverity
from .rules_engine import ValidationRule, name_segments


EMAIL_PATTERN = re.compile(r'^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$')
IPV4_PATTERN = re.compile(r'^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$')
ZIP_PATTERN = re.compile(r'^\d{5}(?:[-\s]?\d{4})?$')

# Shapes used when the parameter name says nothing
CONTENT_PATTERNS = [
    ('email', re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')),
    ('url', re.compile(r'^(?:https?|ftp)://', re.IGNORECASE)),
    ('phone', re.compile(r'^\+?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}$')),
    ('credit_card', re.compile(r'^\d{4}(?:[ -]?\d{4}){2}[ -]?\d{1,4}$')),
    ('ssn', re.compile(r'^\d{3}-\d{2}-\d{4}$')),
    ('ip', re.compile(r'^\d{1,3}(?:\.\d{1,3}){3}$')),
    ('currency', re.compile(r'^-?\$\s?\d[\d,]*(?:\.\d{1,2})?$')),
]

CURRENCY_WORDS = {'price', 'cost', 'amount', 'currency', 'salary', 'fee', 'balance', 'payment'}
LARGE_CURRENCY = Decimal('1000000')
SENTINEL_DATES = {date(1900, 1, 1), date(1753, 1, 1)}
DATE_RANGE_YEARS = 100


def classify_parameter(name: str) -> Optional[str]:
    """
    Infer the expected value kind from a parameter name.

    ZIP is checked before IP so that 'zipCode' is never read as an IP address.
    """
    lowered = name.lower()
    segments = set(name_segments(name))
    if 'email' in lowered:
        return 'email'
    if segments & {'url', 'uri', 'website', 'link', 'homepage'}:
        return 'url'
    if 'phone' in lowered or 'mobile' in lowered or 'fax' in segments:
        return 'phone'
    if 'credit' in lowered or segments & {'card', 'cc'}:
        return 'credit_card'
    if 'ssn' in segments or 'social' in segments:
        return 'ssn'
    if 'zip' in segments or 'zipcode' in lowered or 'postal' in lowered:
        return 'zip'
    if 'ip' in segments or 'ipaddress' in lowered:
        return 'ip'
    if segments & CURRENCY_WORDS:
        return 'currency'
    return None


def classify_value(value: str) -> Optional[str]:
    text = value.strip()
    for kind, pattern in CONTENT_PATTERNS:
        if pattern.match(text):
            return kind
    return None


def luhn_valid(digits: str) -> bool:
    """Luhn checksum over a digit string."""
    total = 0
    for index, ch in enumerate(reversed(digits)):
        n = int(ch)
        if index % 2 == 1:
            n *= 2
            if n > 9:
                n -= 9
        total += n
    return total % 10 == 0


def _digits(value: str) -> str:
    return re.sub(r'\D', '', value)


class ValueFormatRule(ValidationRule):
    """
    Checks email, URL, phone, card, SSN, IP, ZIP and currency values.

    Issues carry the specific rule name (Format.Email, Security.SensitiveData,
    Business.LargeCurrency, ...).
    """
    name = "ValueType.Formats"
    description = "Bound values must match the format their name or shape implies"
    category = ValidationCategory.BUSINESS
    default_severity = ValidationSeverity.ERROR

    def run(self, sql, parameters, context):
        issues: List[ValidationIssue] = []
        for name, value in parameters.items():
            if value is None or isinstance(value, (bool, date)):
                continue
            kind = classify_parameter(name)
            if kind is None and isinstance(value, (str, int, Decimal)):
                kind = classify_value(str(value))
            if kind is None:
                continue
            check = getattr(self, f"_check_{kind}")
            issues.extend(check(name, value))
        return issues

    def _format_issue(self, rule_name: str, name: str, value: Any, description: str,
                      severity: ValidationSeverity = ValidationSeverity.ERROR) -> ValidationIssue:
        return self.issue(
            description,
            parameter_name=name,
            original_value=value,
            severity=severity,
            rule_name=rule_name,
            recommendation="Correct the value format",
        )

    def _sensitive(self, name: str, value: Any, what: str) -> ValidationIssue:
        return self.issue(
            f"Parameter '{name}' contains a {what}",
            parameter_name=name,
            original_value=value,
            severity=ValidationSeverity.CRITICAL,
            rule_name="Security.SensitiveData",
            category=ValidationCategory.SECURITY,
            recommendation="Do not query by raw sensitive data; use a token or surrogate key",
        )

    def _check_email(self, name, value):
        text = str(value).strip()
        if not EMAIL_PATTERN.match(text) or '..' in text:
            return [self._format_issue("Format.Email", name, value, f"'{name}' is not a valid email address")]
        return []

    def _check_url(self, name, value):
        text = str(value).strip()
        if text.lower().startswith('www.'):
            text = 'http://' + text
        parsed = urlparse(text)
        if parsed.scheme.lower() not in ('http', 'https', 'ftp') or not parsed.netloc:
            return [self._format_issue("Format.Url", name, value, f"'{name}' is not a valid URL")]
        return []

    def _check_phone(self, name, value):
        text = str(value)
        digits = _digits(text)
        if re.search(r'[^\d\s().+-]', text) or not 10 <= len(digits) <= 15:
            return [self._format_issue("Format.PhoneNumber", name, value, f"'{name}' is not a valid phone number")]
        return []

    def _check_credit_card(self, name, value):
        text = str(value)
        digits = _digits(text)
        issues = []
        if re.search(r'[^\d\s-]', text) or not 13 <= len(digits) <= 16:
            issues.append(self._format_issue(
                "Format.CreditCard", name, value, f"'{name}' is not a valid card number",
                ValidationSeverity.WARNING,
            ))
            if len(digits) < 13:
                return issues
        elif not luhn_valid(digits):
            issues.append(self._format_issue(
                "Format.CreditCard", name, value, f"'{name}' fails the card checksum",
                ValidationSeverity.WARNING,
            ))
        issues.append(self._sensitive(name, value, "credit card number"))
        return issues

    def _check_ssn(self, name, value):
        text = str(value)
        digits = _digits(text)
        issues = []
        if not re.match(r'^\d{3}-?\d{2}-?\d{4}$', text.strip()):
            issues.append(self._format_issue(
                "Format.SSN", name, value, f"'{name}' is not a valid social security number",
                ValidationSeverity.WARNING,
            ))
        if len(digits) == 9:
            issues.append(self._sensitive(name, value, "social security number"))
        return issues

    def _check_ip(self, name, value):
        match = IPV4_PATTERN.match(str(value).strip())
        if not match or any(int(octet) > 255 for octet in match.groups()):
            return [self._format_issue("Format.IPAddress", name, value, f"'{name}' is not a valid IPv4 address")]
        return []

    def _check_zip(self, name, value):
        if not ZIP_PATTERN.match(str(value).strip()):
            return [self._format_issue("Format.ZipCode", name, value, f"'{name}' is not a valid ZIP code")]
        return []

    def _check_currency(self, name, value):
        try:
            amount = Decimal(str(value).strip().replace('$', '').replace(',', '').strip())
        except InvalidOperation:
            return [self._format_issue("Format.Currency", name, value, f"'{name}' is not a valid amount")]
        if not amount.is_finite():
            return [self._format_issue("Format.Currency", name, value, f"'{name}' is not a valid amount")]
        if amount < 0:
            return [self.issue(
                f"'{name}' is negative", parameter_name=name, original_value=value,
                severity=ValidationSeverity.WARNING, rule_name="Business.NegativeCurrency",
                recommendation="Confirm that a negative amount is intended",
            )]
        if amount > LARGE_CURRENCY:
            return [self.issue(
                f"'{name}' exceeds {LARGE_CURRENCY:,}", parameter_name=name, original_value=value,
                severity=ValidationSeverity.WARNING, rule_name="Business.LargeCurrency",
                recommendation="Confirm the amount",
            )]
        return []


class DateValueRule(ValidationRule):
    name = "ValueType.Dates"
    description = "Date values must be real dates within a plausible range"
    category = ValidationCategory.BUSINESS
    default_severity = ValidationSeverity.WARNING

    def __init__(self, clock: Optional[Callable[[], date]] = None):
        self.clock = clock or date.today

    def run(self, sql, parameters, context):
        today = self.clock()
        earliest = today.replace(year=max(today.year - DATE_RANGE_YEARS, 1), day=1)
        latest = today.replace(year=min(today.year + DATE_RANGE_YEARS, 9999), day=1)
        issues = []
        for name, value in parameters.items():
            if not isinstance(value, date):
                continue
            day = value.date() if isinstance(value, datetime) else value
            if day.year <= 1 or day.year >= 9999 or day in SENTINEL_DATES:
                issues.append(self.issue(
                    f"'{name}' holds a placeholder date ({day.isoformat()})",
                    parameter_name=name, original_value=value, rule_name="Format.Date",
                    recommendation="Supply a real date or leave the parameter unset",
                ))
            elif not earliest <= day <= latest:
                issues.append(self.issue(
                    f"'{name}' is more than {DATE_RANGE_YEARS} years from today",
                    parameter_name=name, original_value=value, rule_name="Range.Date",
                    recommendation="Check the year",
                ))
        return issues


def value_type_rules(clock: Optional[Callable[[], date]] = None) -> List[ValidationRule]:
    return [ValueFormatRule(), DateValueRule(clock)]
