import re

_NON_ID_CHARS = re.compile(r"[^a-zA-Z0-9_]")
_WHITESPACE = re.compile(r"\s+")
_COMMON_WORDS = re.compile(r"\b(Basic|Advanced|Elementary|Introduction|to|the|of|and|in)\b")


def concept_id(name: str) -> str:
    """'Chain-Rule basics' -> 'chain_rule_basics'"""
    cid = name.lower().replace(" ", "_").replace("-", "_")
    return _NON_ID_CHARS.sub("", cid)


def normalize_for_search(concept: str) -> str:
    words = _WHITESPACE.sub(" ", concept.strip()).lower().split()
    return " ".join(w[:1].upper() + w[1:] for w in words)


def generate_search_terms(concept: str) -> list[str]:
    normalized = normalize_for_search(concept)
    if not normalized:
        return []

    terms = [
        normalized,
        f"{normalized} mathematics",
        f"{normalized} math tutorial",
    ]

    if " " in normalized:
        stripped = _WHITESPACE.sub(" ", _COMMON_WORDS.sub("", normalized)).strip()
        if stripped and stripped != normalized:
            terms.append(stripped)

    return terms
