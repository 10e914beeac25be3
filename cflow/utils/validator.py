"""Input validation — checks entrypoint arguments before a run is started."""

MAX_ITEMS = 50


def validate_input(source_text: str) -> str:
    """Validate that the source text is a non-empty string.

    Returns the stripped input on success.
    Raises ValueError if input is empty or whitespace-only.
    """
    if not isinstance(source_text, str) or not source_text.strip():
        raise ValueError("Source text must be a non-empty string.")
    return source_text.strip()


def validate_item_count(item_count, default: int) -> int:
    """Return the requested number of quiz items, falling back to ``default``.

    Raises ValueError unless the count is an int between 1 and MAX_ITEMS.
    """
    if item_count is None:
        return default
    if isinstance(item_count, bool) or not isinstance(item_count, int):
        raise ValueError("Item count must be an integer.")
    if not 1 <= item_count <= MAX_ITEMS:
        raise ValueError(f"Item count must be between 1 and {MAX_ITEMS}, got {item_count}.")
    return item_count
