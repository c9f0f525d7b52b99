"""
Notary

Answers questions from personal notes, and only from them.

Philosophy:
- Every factual sentence names the note it came from
- A citation to a note the model was not shown is never accepted
- An honest "nothing relevant" beats a fluent fabrication

Usage:
    from notary.common import load_config
    from notary.answerer import QueryAnswerer, ContextSelector

    answerer = QueryAnswerer.from_config(load_config())
    result = answerer.answer_query("When did I visit Paris?", ContextSelector.by_tags(["travel"]))
"""

__version__ = "0.1.0"
