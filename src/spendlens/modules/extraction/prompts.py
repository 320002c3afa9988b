from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Any

from spendlens.core.currencies import CURRENCY_SYMBOLS
from spendlens.modules.extraction.validation import EXPENSE_CATEGORIES

# Bump when the template changes so stored records can be traced back to it.
EXTRACTION_PROMPT_VERSION = 3

INSIGHTS_SYSTEM_PROMPT = (
    "You are an expert financial advisor providing spending analysis and savings "
    "recommendations."
)

EXTRACTION_PROMPT = """\
Extract detailed expense information from this receipt image. Return ONLY valid JSON (no markdown, no text).

REQUIRED: date (YYYY-MM-DD), merchant, amount (final total), currency, category from: {categories}

OPTIONAL: description, paymentMethod, taxAmount, confidence (0.0-1.0)

ITEMS (if clearly visible): Extract individual items with: name, quantity, unitPrice, totalPrice, category (Food/Beverage/Product/Service/etc), description

FINANCIAL: subtotal, discounts, fees, tip, itemsTotal

CURRENCY RECOGNITION:
{currency_table}
- Default to USD if currency cannot be determined

DATE FORMAT HANDLING:
- For German date format DD.MM.YY, interpret YY as 20YY (e.g., "25" means "2025")
- For Indian date format DD/MM/YY or DD-MM-YY, interpret YY as 20YY
- For US date format MM/DD/YY, interpret YY as 20YY
- For European date format DD.MM.YYYY or DD/MM/YYYY, use as-is
- Always prioritize full ISO timestamps when available (e.g., "2025-09-06T19:22:16.000Z")
- If both short format and full timestamp are present, use the full timestamp

REGIONAL CONSIDERATIONS:
- Indian receipts: Look for GST, CGST, SGST, IGST tax labels
- European receipts: Look for VAT, MwSt, TVA, IVA tax labels
- US receipts: Look for Sales Tax, State Tax labels
- UK receipts: Look for VAT tax labels
- Decimal separators: Use . for amount (convert , to . if needed)

RULES:
- Extract items ONLY if clearly itemized
- Use final total for "amount"
- If unclear, set items to null
- Ensure financial breakdown adds up
- Always convert the currency symbol or name to the standard 3-letter code

JSON FORMAT:
{{
    "date": "YYYY-MM-DD",
    "merchant": "Store Name",
    "amount": 99.99,
    "currency": "USD",
    "category": "Shopping",
    "description": "Brief description",
    "paymentMethod": "Credit Card",
    "taxAmount": 8.25,
    "confidence": 0.85,
    "items": [
        {{
            "name": "Item Name",
            "quantity": 1,
            "unitPrice": 10.00,
            "totalPrice": 10.00,
            "category": "Product",
            "description": "Additional details"
        }}
    ],
    "subtotal": 91.74,
    "discounts": null,
    "fees": null,
    "tip": null,
    "itemsTotal": 91.74
}}

For unclear receipts, set items/breakdown to null and extract basic expense info only.
"""

INSIGHTS_PROMPT = """\
Analyze spending data and provide comprehensive financial insights.

CRITICAL: Return ONLY valid JSON without any markdown formatting, explanations, or additional text.

EXPENSE SUMMARY:
- Total Expenses: {count} transactions
- Total Amount: {total}
- Average Transaction: {average}
- Currency: {currency}
- Date Range: {first_date} to {last_date}
- Analysis Date: {today}

CATEGORY BREAKDOWN:
{categories}

TOP MERCHANTS:
{merchants}

TOP ITEMS:
{items}

Provide detailed analysis with:
1. 3-5 savings opportunities with realistic monthly amounts and implementation steps
2. Category insights with percentages, patterns and optimization strategies
3. Spending patterns and concerning behaviors with correction steps
4. Actionable items ranked by potential monthly savings
Amounts are in {currency}; tailor regional money-saving tips to where {currency} is used.

JSON FORMAT:
{{
  "totalPotentialSavings": <number>,
  "spendingEfficiencyScore": <0-100>,
  "topCategory": "<category>",
  "savingsOpportunities": [
    {{
      "title": "Specific Opportunity Title",
      "description": "Brief 1-2 sentence overview",
      "whyItSaves": "The financial mechanism behind the savings",
      "steps": ["Actionable step 1", "Actionable step 2"],
      "potentialSavings": <monthly_amount>,
      "difficulty": "easy|medium|hard",
      "impact": "low|medium|high",
      "category": "<category>"
    }}
  ],
  "categoryInsights": [
    {{
      "category": "Category",
      "totalSpent": <amount>,
      "transactionCount": <count>,
      "percentageOfTotal": <percentage>,
      "keyInsights": ["Insight 1", "Insight 2"],
      "optimizationStrategies": ["Strategy 1", "Strategy 2"],
      "potentialMonthlySavings": <amount>
    }}
  ],
  "spendingPatterns": [
    {{
      "pattern": "Pattern",
      "description": "Description",
      "frequency": "daily|weekly|monthly",
      "severity": "info|warning|critical",
      "financialImpact": <amount>,
      "recommendations": ["Recommendation"]
    }}
  ],
  "actionItems": [
    {{
      "title": "Action",
      "description": "Description",
      "difficulty": "easy|medium|hard",
      "potentialMonthlySavings": <amount>
    }}
  ]
}}
"""


def _currency_table() -> str:
    return "\n".join(
        f"- {code}: {', '.join(symbols)}" for code, symbols in CURRENCY_SYMBOLS.items()
    )


def build_extraction_prompt() -> str:
    return EXTRACTION_PROMPT.format(
        categories=", ".join(EXPENSE_CATEGORIES),
        currency_table=_currency_table(),
    )


def _money(amount: Decimal, currency: str) -> str:
    return f"{amount.quantize(Decimal('0.01')):,} {currency}"


def build_insights_prompt(
    records: Sequence[Any],
    *,
    today: date,
    max_categories: int = 10,
    max_merchants: int = 10,
    max_items: int = 15,
) -> str:
    """
    Summarize the record set into the analysis prompt.

    `records` are persisted expenses (or anything exposing the same attributes:
    expense_date, merchant, amount, currency, category, line_items).
    """
    count = len(records)
    total = sum((Decimal(r.amount) for r in records), Decimal("0"))
    average = total / count if count else Decimal("0")
    currency_counts = Counter(r.currency for r in records)
    currency = currency_counts.most_common(1)[0][0] if currency_counts else "USD"
    dates = [r.expense_date for r in records]

    by_category: dict[str, Decimal] = defaultdict(Decimal)
    by_merchant: dict[str, list[Decimal]] = defaultdict(list)
    by_item: dict[str, list[Decimal]] = defaultdict(list)
    for r in records:
        by_category[r.category] += Decimal(r.amount)
        by_merchant[r.merchant].append(Decimal(r.amount))
        for item in r.line_items or []:
            by_item[item.name.lower()].append(Decimal(item.total_price))

    categories = sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)
    merchants = sorted(by_merchant.items(), key=lambda kv: sum(kv[1]), reverse=True)
    items = sorted(by_item.items(), key=lambda kv: sum(kv[1]), reverse=True)

    return INSIGHTS_PROMPT.format(
        count=count,
        total=_money(total, currency),
        average=_money(average, currency),
        currency=currency,
        first_date=min(dates).isoformat() if dates else "N/A",
        last_date=max(dates).isoformat() if dates else "N/A",
        today=today.isoformat(),
        categories="\n".join(
            f"{name}: {_money(amount, currency)}" for name, amount in categories[:max_categories]
        )
        or "N/A",
        merchants="\n".join(
            f"{name}: {_money(sum(amounts), currency)} ({len(amounts)} visits)"
            for name, amounts in merchants[:max_merchants]
        )
        or "N/A",
        items="\n".join(
            f"{name}: {_money(sum(prices), currency)} ({len(prices)}x)"
            for name, prices in items[:max_items]
        )
        or "N/A",
    )
