"""Shared item name normalization utilities."""


def normalize_item_name(item_name: str) -> str:
    """Normalize an item name for case-insensitive exact matching."""
    return " ".join(item_name.lower().split())


def search_tokens(item_name: str, min_length: int = 3) -> list[str]:
    """Split a name into whitespace-delimited tokens of at least min_length."""
    return [token for token in normalize_item_name(item_name).split() if len(token) >= min_length]


def fuzzy_matches(query: str, candidate: str, min_length: int = 3) -> bool:
    """True if any query token appears as a substring of the candidate name."""
    candidate_name = normalize_item_name(candidate)
    return any(token in candidate_name for token in search_tokens(query, min_length))
