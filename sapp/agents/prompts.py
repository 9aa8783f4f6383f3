"""Prompts for the categorization LLM: system prompt and the per-job instruction builder."""

from collections.abc import Iterable
from decimal import Decimal

from sapp.core.models import CategoryInfo, Person

SYSTEM_PROMPT = (
    "You are a careful household bookkeeping assistant. You split one purchase into categorized parts "
    "and answer with a single JSON object and nothing else."
)

PREAMBLE = (
    "You will now categorize a purchase using a list of categories and a description of the purchase. "
    "This is ONE purchase in ONE shop."
)

OUTPUT_SCHEMA = (
    '{"ambiguity_flag": "<string>", "spendings": [{"apportion_mode": "shared|alone|other", '
    '"category": "<category_name>", "amount": <number>, "description": "<string>"}]}'
)

PARTNER_MODE_RULES = (
    '- "alone": the description says the item is ONLY for the buyer ({buyer}), OR nothing is said about '
    "sharing or the partner (the default for personal things such as clothes or tickets).\n"
    '- "shared": the description says the item is shared, joint or "for us", OR it is a typical joint '
    "expense (groceries, dinner out) AND nothing else is specified. The cost is split evenly with {partner}.\n"
    '- "other": ONLY when the description explicitly says the item is just for the partner ({partner}).'
)

SOLO_MODE_RULES = (
    "- There is no partner to share with, so EVERY part MUST use apportion_mode \"alone\". "
    'The values "shared" and "other" are not allowed.'
)

PARTNER_EXAMPLES = """\
1. Description: "Red Bull for me for 25, the rest is a shared dinner", Total: 100, Buyer: {buyer}, Partner: {partner}
   -> [{{"apportion_mode": "alone", "category": "...", "amount": 25.0, "description": "Red Bull"}}, \
{{"apportion_mode": "shared", "category": "...", "amount": 75.0, "description": "Dinner"}}]
2. Description: "Tickets", Total: 500, Buyer: {buyer}, Partner: {partner}
   -> [{{"apportion_mode": "alone", "category": "...", "amount": 500.0, "description": "Tickets"}}] \
(sharing is not mentioned)
3. Description: "Bread for {partner}", Total: 40, Buyer: {buyer}, Partner: {partner}
   -> [{{"apportion_mode": "other", "category": "...", "amount": 40.0, "description": "Bread"}}] \
(it is specifically for the partner)
4. Description: "Shared lunch", Total: 200, Buyer: {buyer}, Partner: {partner}
   -> [{{"apportion_mode": "shared", "category": "...", "amount": 200.0, "description": "Lunch"}}]
5. Description: "Sweater", Total: 600, Buyer: {buyer}, Partner: {partner}
   -> [{{"apportion_mode": "alone", "category": "...", "amount": 600.0, "description": "Sweater"}}] \
(personal unless stated otherwise)"""

SOLO_EXAMPLES = """\
1. Description: "Red Bull for 25, the rest is dinner", Total: 100, Buyer: {buyer}
   -> [{{"apportion_mode": "alone", "category": "...", "amount": 25.0, "description": "Red Bull"}}, \
{{"apportion_mode": "alone", "category": "...", "amount": 75.0, "description": "Dinner"}}]
2. Description: "Tickets", Total: 500, Buyer: {buyer}
   -> [{{"apportion_mode": "alone", "category": "...", "amount": 500.0, "description": "Tickets"}}]"""

PROMPT_TEMPLATE = """{preamble}
{people}
The total amount of the purchase is {total}.
The description of the purchase is: "{free_text}".

Split the purchase into one or more parts based on the description and the total amount.
For EACH part decide 'apportion_mode' based ONLY on the description.
Return JSON in exactly this format:
{schema}
with one or more elements in the "spendings" list.

IMPORTANT RULES FOR 'apportion_mode':
{mode_rules}

- ambiguity_flag: if anything about the purchase, the split or the description is unclear, fill the string \
with a short explanation. Otherwise leave it empty (""). Do not overuse it.
- description: may be an empty string ("") if the category is descriptive enough (e.g. "Groceries").

Examples of how 'apportion_mode' follows from the description:
{examples}

These are the categories you can choose from (category name first, notes after):
{categories}
Use the most specific category. Use the EXACT category name.

Exclude savings and investments from the answer.
Answer ONLY with valid JSON, WITHOUT markdown formatting. The sum of 'amount' MUST equal the total amount {total}.
"""


def format_categories(categories: Iterable[CategoryInfo]) -> str:
    """Render the catalog as one bullet per category, sorted by name."""
    lines = []
    for category in sorted(categories, key=lambda c: c.name):
        line = f"- {category.name}"
        if category.hint:
            line += f' - "{category.hint}"'
        lines.append(line)
    return "\n".join(lines)


def build_prompt(
    total_amount: Decimal,
    submitter: Person,
    co_payer: Person | None,
    free_text: str,
    categories: Iterable[CategoryInfo],
) -> str:
    """Build the instruction text for one categorization attempt.

    The output only depends on the arguments, and the catalog is sorted by name, so the
    same inputs always give byte-identical text.
    """
    if co_payer is not None:
        people = (
            f"The person who paid (and wrote the description) is {submitter.name}. "
            f"The purchase may involve the partner {co_payer.name}."
        )
        mode_rules = PARTNER_MODE_RULES.format(buyer=submitter.name, partner=co_payer.name)
        examples = PARTNER_EXAMPLES.format(buyer=submitter.name, partner=co_payer.name)
    else:
        people = f"The person who paid (and wrote the description) is {submitter.name}. There is no partner involved."
        mode_rules = SOLO_MODE_RULES
        examples = SOLO_EXAMPLES.format(buyer=submitter.name)
    return PROMPT_TEMPLATE.format(
        preamble=PREAMBLE,
        people=people,
        total=f"{Decimal(total_amount):.2f}",
        free_text=free_text,
        schema=OUTPUT_SCHEMA,
        mode_rules=mode_rules,
        examples=examples,
        categories=format_categories(categories),
    )
