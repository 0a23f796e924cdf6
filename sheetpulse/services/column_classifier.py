"""
Column Classifier

Infers the semantic type of each spreadsheet column from its header and a
sample of its values, with no user-supplied schema.

Every column resolves to a (type, category) pair:
    type     ∈ date, category, currency, percentage, quantity, number, text, mixed
    category ∈ label, numeric
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern

from sheetpulse.config import settings
from sheetpulse.services.value_parsing import (
    is_amount,
    is_date_value,
    is_numeric,
    non_blank,
)


@dataclass(frozen=True)
class ColumnProfile:
    """Inferred semantics of a single column."""
    header: str
    type: str
    category: str
    rule: str = ""

    @property
    def is_numeric(self) -> bool:
        return self.category == "numeric"


# ============================================================================
# VOCABULARY
# ============================================================================

@dataclass(frozen=True)
class ColumnVocabulary:
    """
    Header keyword tables, matched case-insensitively anywhere in the header.

    Swap in a different instance to localise or to test a single rule.
    """
    version: str
    date: Pattern
    category: Pattern
    percentage: Pattern
    currency: Pattern
    quantity: Pattern


def _pattern(*keywords: str) -> Pattern:
    return re.compile("|".join(keywords), re.IGNORECASE)


DEFAULT_VOCABULARY = ColumnVocabulary(
    version="1",
    date=_pattern(
        "date", "time", "day", "week", "month", "year", "period", "quarter", r"q[1-4]",
    ),
    category=_pattern(
        "name", "category", "type", "group", "class", "department", "dept",
        "division", "region", "area", "zone", "city", "state", "country",
        "product", "item", "material", "grade", "status", "project", "client",
        "vendor", "supplier", "contractor",
    ),
    percentage=_pattern(
        "percent", "pct", "rate", "ratio", "efficiency", "yield", "margin",
        "growth", "change", "%",
    ),
    currency=_pattern(
        "revenue", "sales", "cost", "price", "amount", "value", "budget",
        "expense", "profit", "loss", "income", "payment", "invoice", "billing",
        "total", "turnover", "wage", "salary",
    ),
    quantity=_pattern(
        "qty", "quantity", "count", "number", "num", "units", "pieces", "tons",
        "kg", "mt", "weight", "volume", "length", "width", "height",
        "thickness", "diameter", "gauge", "size", "stock", "inventory",
        "production", "output", "capacity", "load", "order",
    ),
)


# ============================================================================
# RULE TABLE
# ============================================================================

@dataclass
class ColumnSample:
    """What the rules look at: the header and the non-empty sampled values."""
    header: str
    values: List[Any]
    row_count: int
    vocabulary: ColumnVocabulary
    numeric_ratio: float
    numeric_count: int = field(init=False)
    string_count: int = field(init=False)
    unique_count: int = field(init=False)

    def __post_init__(self):
        self.numeric_count = sum(1 for v in self.values if is_numeric(v))
        self.string_count = sum(
            1 for v in self.values if isinstance(v, str) and not is_numeric(v)
        )
        self.unique_count = len({str(v).strip().lower() for v in self.values})

    def header_matches(self, pattern: Pattern) -> bool:
        return bool(pattern.search(self.header))

    @property
    def has_values(self) -> bool:
        return len(self.values) > 0

    def all_values(self, check: Callable[[Any], bool]) -> bool:
        return self.has_values and all(check(v) for v in self.values)

    @property
    def mostly_numeric(self) -> bool:
        return self.has_values and self.numeric_count / len(self.values) >= self.numeric_ratio

    @property
    def mostly_strings(self) -> bool:
        return self.has_values and self.string_count / len(self.values) >= self.numeric_ratio

    @property
    def few_distinct_values(self) -> bool:
        return self.unique_count <= min(self.row_count * 0.5, 30)


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    applies: Callable[[ColumnSample], bool]
    type: str
    category: str


# Evaluated top to bottom, first match wins. Header vocabulary outranks value
# sniffing; the value-based rules only see unconventional headers.
CLASSIFICATION_RULES: List[ClassificationRule] = [
    ClassificationRule(
        "date_header",
        lambda s: s.header_matches(s.vocabulary.date),
        "date", "label",
    ),
    ClassificationRule(
        "date_values",
        lambda s: s.all_values(is_date_value),
        "date", "label",
    ),
    ClassificationRule(
        "category_header",
        lambda s: s.header_matches(s.vocabulary.category),
        "category", "label",
    ),
    ClassificationRule(
        "percentage_header",
        lambda s: s.header_matches(s.vocabulary.percentage) and s.all_values(is_numeric),
        "percentage", "numeric",
    ),
    ClassificationRule(
        "currency_header",
        lambda s: s.header_matches(s.vocabulary.currency) and s.all_values(is_amount),
        "currency", "numeric",
    ),
    ClassificationRule(
        "quantity_header",
        lambda s: s.header_matches(s.vocabulary.quantity) and s.all_values(is_numeric),
        "quantity", "numeric",
    ),
    ClassificationRule(
        "numeric_values",
        lambda s: s.mostly_numeric,
        "number", "numeric",
    ),
    ClassificationRule(
        "categorical_strings",
        lambda s: s.mostly_strings and s.few_distinct_values,
        "category", "label",
    ),
    ClassificationRule(
        "free_text",
        lambda s: s.mostly_strings,
        "text", "label",
    ),
]

FALLBACK_RULE = ClassificationRule("mixed", lambda s: True, "mixed", "label")


# ============================================================================
# CLASSIFIER
# ============================================================================

class ColumnClassifier:
    """
    Classifies spreadsheet columns.

    The same header and rows always yield the same profile; nothing is cached
    or learned between calls.
    """

    def __init__(
        self,
        vocabulary: ColumnVocabulary = DEFAULT_VOCABULARY,
        rules: Optional[List[ClassificationRule]] = None,
        sample_size: Optional[int] = None,
        numeric_ratio: Optional[float] = None,
    ):
        self.vocabulary = vocabulary
        self.rules = list(rules) if rules is not None else CLASSIFICATION_RULES
        self.sample_size = sample_size or settings.SAMPLE_SIZE
        self.numeric_ratio = numeric_ratio if numeric_ratio is not None else settings.NUMERIC_RATIO

    def sample(self, header: str, rows: List[Dict[str, Any]]) -> ColumnSample:
        sampled = [row.get(header, "") for row in rows[: self.sample_size]]
        return ColumnSample(
            header=str(header),
            values=non_blank(sampled),
            row_count=len(rows),
            vocabulary=self.vocabulary,
            numeric_ratio=self.numeric_ratio,
        )

    def classify(self, header: str, rows: List[Dict[str, Any]]) -> ColumnProfile:
        """Return the profile from the first rule that applies."""
        column = self.sample(header, rows)
        for rule in self.rules:
            if rule.applies(column):
                return ColumnProfile(header, rule.type, rule.category, rule.name)
        return ColumnProfile(header, FALLBACK_RULE.type, FALLBACK_RULE.category, FALLBACK_RULE.name)

    def classify_all(self, rows: List[Dict[str, Any]]) -> Dict[str, ColumnProfile]:
        """Profiles for every header of the first row, in header order."""
        if not rows:
            return {}
        return {header: self.classify(header, rows) for header in rows[0].keys()}


# Convenience function for direct usage
def classify_column(header: str, rows: List[Dict[str, Any]]) -> ColumnProfile:
    return ColumnClassifier().classify(header, rows)
