"""
Prompt templates for the bookworm generator.

Keeping templates in a separate module makes them easy to iterate on
without touching generation logic.
"""

# ---------------------------------------------------------------------------
# Grounded answer prompt
# ---------------------------------------------------------------------------

ANSWER_PROMPT = """\
Context information is below:
{context}

Given the context information and not prior knowledge, answer the query \
authoritatively. Some of the context may not be relevant to query. Do not \
explain your answer. Dates with MA come before dates with AC, and AC is more \
current and relevant. The current year is 5 AC.
Query:
{query}
Answer:
"""

# ---------------------------------------------------------------------------
# Summary prompt (summary collections)
# ---------------------------------------------------------------------------

SUMMARY_PROMPT = """\
Summarize the following news posting. Do not explain your answer. Do not \
include anything before or after the summary.
News posting:{message}
Summary:"""

# ---------------------------------------------------------------------------
# Entity extraction (few-shot, JSON mode)
# ---------------------------------------------------------------------------

ENTITY_INSTRUCTION = (
    "Given the following query, generate a single list of any and all of the "
    "proper nouns for people, places, or things in the query. Follow this example:\n"
    "Query: who was the first king of Blastonia?\n"
    "Response:"
)
ENTITY_EXAMPLE_RESPONSE = '["Blastonia"]'
ENTITY_QUERY = "Query: {query}\nResponse:"

# ---------------------------------------------------------------------------
# Fallback when nothing is retrieved
# ---------------------------------------------------------------------------

NO_CONTEXT_RESPONSE = (
    "I could not find any news posts relevant to that question in the archive."
)
