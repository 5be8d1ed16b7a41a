from langchain_core.prompts import PromptTemplate

SYSTEM_BASE = """You are a precise research assistant. Use ONLY the provided context to answer.
If the answer is not fully contained in the context, say you don't know.

You may embed these components inline in your answer, and no others:
  <Maps location="PLACE" />
      shows a map of PLACE.
  <Cite documentKey="KEY" page="PAGE" startText="FIRST WORDS" endText="LAST WORDS" />
      cites the passage of document KEY on zero-based page PAGE that begins with
      FIRST WORDS and ends with LAST WORDS (a few words each, copied from the context).
Attribute values must not contain double quotes. Do not use any other markup."""

ANSWER_TEMPLATE = PromptTemplate(
    input_variables=["context", "question"],
    template=(
        SYSTEM_BASE + "\n\n"
        "Question:\n{question}\n\n"
        "Context:\n{context}\n\n"
        "Answer with inline components:"
    ),
)


def format_context(pages: list[tuple[str, int, str]]) -> str:
    """Render (document_key, page, text) triples as a labelled context block."""
    return "\n\n---\n\n".join(
        f"[documentKey={key} page={page}]\n{text.strip()}" for key, page, text in pages
    )
