"""
Bank statement text parser.

Turns line-oriented OCR text into header details plus a list of signed transactions.
Three line layouts are tried in a fixed priority order:

  1. debit_credit    DATE DESCRIPTION DEBIT CREDIT BALANCE   (empty cells written as "-")
  2. amount_balance  DATE DESCRIPTION AMOUNT BALANCE
  3. amount_only     DATE DESCRIPTION AMOUNT

The first layout that parses at least `min_coverage` of the dated lines wins. If none
does, the statement is rejected (StatementParseError) instead of guessing.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Optional

from dateutil import parser as date_parser

from schemas.banking import StatementPeriod, Transaction
from services.errors import StatementParseError

# Placeholder year when the text carries none; a leap year so 02/29 parses.
DEFAULT_YEAR = 2000

MONTH = r"(?i:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sept?|Oct|Nov|Dec)"
DATE = rf"(?:\d{{1,2}}[/-]\d{{1,2}}(?:[/-]\d{{2,4}})?|{MONTH}\.? \d{{1,2}}(?:,? \d{{4}})?)"
AMOUNT = r"(?:[-+]?\$?\(?-?\$?\d[\d,]*\.\d{2}\)?-?(?:\s?(?:CR|DR))?)"
EMPTY_CELL = r"(?:-{1,2}|—)"
FULL_DATE = r"(?:\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|[A-Za-z]{3,9}\.? \d{1,2},? \d{4})"

DATED_LINE = re.compile(rf"^{DATE}\s")
AMOUNT_TOKEN = re.compile(AMOUNT)
BALANCE_LINE = re.compile(r"\b(beginning|opening|previous|starting|ending|closing|new)\s+balance\b", re.IGNORECASE)
OPENING_LABEL = re.compile(r"\b(?:beginning|opening|previous|starting)\s+balance\b", re.IGNORECASE)
CLOSING_LABEL = re.compile(r"\b(?:ending|closing|new)\s+balance\b", re.IGNORECASE)
PERIOD = re.compile(
    rf"(?P<start>{FULL_DATE})\s*(?:-|–|to|through|thru)\s*(?P<end>{FULL_DATE})",
    re.IGNORECASE,
)
ACCOUNT_NUMBER = re.compile(
    r"\b(?:account|acct)\.?\s*(?:number|no\.?|#)?\s*:?\s*(?P<number>[X\*\d][X\*\d\- ]{2,18}\d)\b",
    re.IGNORECASE,
)

BANK_PATTERNS: list[tuple[str, str]] = [
    ("JPMorgan Chase", r"\bJPMorgan\s+Chase\b|\bCHASE\b|chase\.com"),
    ("Bank of America", r"\bBank\s+of\s+America\b|bankofamerica\.com"),
    ("Wells Fargo", r"\bWells\s+Fargo\b|wellsfargo\.com"),
    ("Citibank", r"\bCitibank\b|\bCitiBusiness\b"),
    ("U.S. Bank", r"\bU\.?S\.?\s+Bank\b|usbank\.com"),
    ("PNC Bank", r"\bPNC\s+Bank\b|pnc\.com"),
    ("Truist", r"\bTruist\b|\bBB&T\b|\bSunTrust\b"),
    ("Royal Bank of Canada", r"\bRoyal\s+Bank\s+of\s+Canada\b|\bRBC\b"),
    ("TD Bank", r"\bToronto-Dominion\b|\bTD\s+(?:Bank|Canada\s+Trust)\b"),
    ("Scotiabank", r"\bBank\s+of\s+Nova\s+Scotia\b|\bScotiabank\b"),
    ("BMO", r"\bBank\s+of\s+Montreal\b|\bBMO\b"),
    ("CIBC", r"\bCanadian\s+Imperial\s+Bank\b|\bCIBC\b"),
    ("National Bank of Canada", r"\bNational\s+Bank\s+of\s+Canada\b"),
]

ACCOUNT_TYPE_PATTERNS: list[tuple[str, str]] = [
    ("business_checking", r"\bbusiness\s+(?:checking|chequing)\b"),
    ("checking", r"\b(?:checking|chequing)\b"),
    ("savings", r"\bsavings\b"),
    ("business", r"\bbusiness\b"),
]

DEBIT_KEYWORDS = re.compile(
    r"\b(withdrawal|debit|payment|purchase|fee|charge|check|cheque|transfer to|pos|atm|nsf|overdraft)\b",
    re.IGNORECASE,
)


@dataclass
class _LineMatch:
    date_token: str
    description: str
    amount: float
    explicit_sign: bool
    balance: Optional[float]
    raw_line: str


@dataclass
class ParsedStatement:
    transactions: list[Transaction]
    layout: str
    coverage: float
    dated_lines: int
    bank_name: Optional[str] = None
    account_type: Optional[str] = None
    account_number: Optional[str] = None
    period: StatementPeriod = field(default_factory=StatementPeriod)
    opening_balance: Optional[float] = None
    closing_balance: Optional[float] = None

    @property
    def has_running_balance(self) -> bool:
        return bool(self.transactions) and all(t.balance is not None for t in self.transactions)


def parse_amount(token: str) -> tuple[float, bool]:
    """
    '1,234.56' -> (1234.56, False); '-50.00', '(50.00)', '50.00-', '50.00 DR' -> (-50.0, True).
    The flag says whether the sign was written explicitly.
    """
    s = token.strip().upper()
    negative = (
        "-" in s
        or (s.startswith("(") and s.rstrip(" CRD").endswith(")"))
        or s.endswith("DR")
    )
    explicit = negative or s.startswith("+") or s.endswith("CR")
    digits = re.sub(r"[^\d.]", "", s)
    value = float(digits)
    return (-value if negative else value), explicit


def _match_debit_credit(line: str) -> Optional[_LineMatch]:
    m = _DEBIT_CREDIT.match(line)
    if not m:
        return None
    debit = 0.0 if re.fullmatch(EMPTY_CELL, m.group("debit")) else abs(parse_amount(m.group("debit"))[0])
    credit = 0.0 if re.fullmatch(EMPTY_CELL, m.group("credit")) else abs(parse_amount(m.group("credit"))[0])
    return _LineMatch(
        date_token=m.group("date"),
        description=m.group("desc").strip(),
        amount=round(credit - debit, 2),
        explicit_sign=True,
        balance=parse_amount(m.group("balance"))[0],
        raw_line=line,
    )


def _match_amount_balance(line: str) -> Optional[_LineMatch]:
    m = _AMOUNT_BALANCE.match(line)
    if not m:
        return None
    amount, explicit = parse_amount(m.group("amount"))
    return _LineMatch(
        date_token=m.group("date"),
        description=m.group("desc").strip(),
        amount=amount,
        explicit_sign=explicit,
        balance=parse_amount(m.group("balance"))[0],
        raw_line=line,
    )


def _match_amount_only(line: str) -> Optional[_LineMatch]:
    m = _AMOUNT_ONLY.match(line)
    if not m:
        return None
    amount, explicit = parse_amount(m.group("amount"))
    description = m.group("desc").strip()
    if not explicit and DEBIT_KEYWORDS.search(description):
        amount = -abs(amount)
    return _LineMatch(
        date_token=m.group("date"),
        description=description,
        amount=amount,
        explicit_sign=explicit,
        balance=None,
        raw_line=line,
    )


_DEBIT_CREDIT = re.compile(
    rf"^(?P<date>{DATE})\s+(?P<desc>.+?)\s+(?P<debit>{AMOUNT}|{EMPTY_CELL})\s+"
    rf"(?P<credit>{AMOUNT}|{EMPTY_CELL})\s+(?P<balance>{AMOUNT})$"
)
_AMOUNT_BALANCE = re.compile(rf"^(?P<date>{DATE})\s+(?P<desc>.+?)\s+(?P<amount>{AMOUNT})\s+(?P<balance>{AMOUNT})$")
_AMOUNT_ONLY = re.compile(rf"^(?P<date>{DATE})\s+(?P<desc>.+?)\s+(?P<amount>{AMOUNT})$")

LAYOUTS: list[tuple[str, Callable[[str], Optional[_LineMatch]]]] = [
    ("debit_credit", _match_debit_credit),
    ("amount_balance", _match_amount_balance),
    ("amount_only", _match_amount_only),
]


def _clean_lines(text: str) -> list[str]:
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return [re.sub(r"[ \t]+", " ", ln).strip() for ln in lines if ln.strip()]


def _first_amount_after(label: re.Pattern, line: str) -> Optional[float]:
    m = label.search(line)
    if not m:
        return None
    tokens = AMOUNT_TOKEN.findall(line[m.end():])
    if not tokens:
        return None
    return parse_amount(tokens[0])[0]


def _parse_full_date(token: str) -> Optional[date]:
    try:
        return date_parser.parse(token).date()
    except (ValueError, OverflowError):
        return None


def _extract_period(lines: list[str]) -> StatementPeriod:
    for line in lines:
        if DATED_LINE.match(line) and not re.search(r"period|statement", line, re.IGNORECASE):
            continue
        m = PERIOD.search(line)
        if m:
            start, end = _parse_full_date(m.group("start")), _parse_full_date(m.group("end"))
            if start and end and start <= end:
                return StatementPeriod(start_date=start, end_date=end)
    return StatementPeriod()


def _first_match(patterns: list[tuple[str, str]], text: str) -> Optional[str]:
    for name, pattern in patterns:
        if re.search(pattern, text, re.IGNORECASE):
            return name
    return None


def _mask_account(number: str) -> Optional[str]:
    digits = re.sub(r"\D", "", number)
    if len(digits) < 4:
        return None
    return "****" + digits[-4:]


def _parse_line_date(token: str, year: int, cursor: list[int]) -> Optional[date]:
    """
    Parse a transaction date. Dates without a year take `year`, rolling over to the
    next year when months wrap (a Dec→Jan statement). `cursor` is [last_month, year_offset].
    """
    m = re.fullmatch(r"(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?", token)
    try:
        if m:
            month, day = int(m.group(1)), int(m.group(2))
            if m.group(3):
                y = int(m.group(3))
                cursor[0] = month
                return date(y + 2000 if y < 100 else y, month, day)
        else:
            parsed = date_parser.parse(token.replace(".", ""), default=datetime(DEFAULT_YEAR, 1, 1)).date()
            if re.search(r"\d{4}$", token):
                cursor[0] = parsed.month
                return parsed
            month, day = parsed.month, parsed.day
        if cursor[0] and month < cursor[0] - 6:
            cursor[1] += 1
        cursor[0] = month
        return date(year + cursor[1], month, day)
    except (ValueError, OverflowError):
        return None


def _infer_signs(matches: list[_LineMatch], opening: Optional[float]) -> None:
    """Unsigned amounts in a balance layout take the sign the running balance implies."""
    previous = opening
    for lm in matches:
        if lm.balance is None:
            previous = None
            continue
        if previous is not None and not lm.explicit_sign:
            as_credit = abs(previous + abs(lm.amount) - lm.balance)
            as_debit = abs(previous - abs(lm.amount) - lm.balance)
            lm.amount = -abs(lm.amount) if as_debit < as_credit else abs(lm.amount)
        elif previous is None and not lm.explicit_sign and DEBIT_KEYWORDS.search(lm.description):
            lm.amount = -abs(lm.amount)
        previous = lm.balance


def parse_statement(text: str, year_hint: Optional[int] = None, min_coverage: float = 0.5) -> ParsedStatement:
    lines = _clean_lines(text or "")
    joined = "\n".join(lines)

    opening = closing = None
    for line in lines:
        if opening is None:
            opening = _first_amount_after(OPENING_LABEL, line)
        if closing is None:
            closing = _first_amount_after(CLOSING_LABEL, line)

    period = _extract_period(lines)
    account = ACCOUNT_NUMBER.search(joined)

    candidates = [ln for ln in lines if DATED_LINE.match(ln) and not BALANCE_LINE.search(ln)]
    parsed = ParsedStatement(
        transactions=[],
        layout="none",
        coverage=0.0,
        dated_lines=len(candidates),
        bank_name=_first_match(BANK_PATTERNS, joined),
        account_type=_first_match(ACCOUNT_TYPE_PATTERNS, joined),
        account_number=_mask_account(account.group("number")) if account else None,
        period=period,
        opening_balance=opening,
        closing_balance=closing,
    )
    if not candidates:
        return parsed

    best_coverage = 0.0
    for layout, matcher in LAYOUTS:
        matches = [lm for lm in (matcher(ln) for ln in candidates) if lm is not None]
        coverage = len(matches) / len(candidates)
        if coverage < min_coverage:
            best_coverage = max(best_coverage, coverage)
            continue
        if layout != "amount_only":
            _infer_signs(matches, opening)
        year = period.start_date.year if period.start_date else (year_hint or DEFAULT_YEAR)
        cursor = [period.start_date.month if period.start_date else 0, 0]
        transactions = []
        for lm in matches:
            when = _parse_line_date(lm.date_token, year, cursor)
            if when is None:
                continue
            transactions.append(
                Transaction(
                    date=when,
                    description=lm.description,
                    amount=round(lm.amount, 2),
                    balance=lm.balance,
                    raw_line=lm.raw_line,
                )
            )
        # Rows with unreadable dates count against coverage too (e.g. DD/MM dates).
        coverage = len(transactions) / len(candidates)
        best_coverage = max(best_coverage, coverage)
        if coverage < min_coverage:
            continue
        parsed.transactions = transactions
        parsed.layout = layout
        parsed.coverage = round(coverage, 4)
        return parsed

    raise StatementParseError(
        f"No statement layout matched at least {min_coverage:.0%} of {len(candidates)} dated lines "
        f"(best {best_coverage:.0%})",
        coverage=best_coverage,
    )
