"""Output Formatter — renders a saved quiz or outline artifact as Markdown."""

_KIND_LABELS = {
    "single_choice": "Single choice",
    "multiple_choice": "Multiple choice",
    "true_false": "True / False",
    "unknown": "Question",
}


def _render_quiz(data: dict) -> list[str]:
    lines = []
    meta = data.get("meta", {})

    lines.append("# Quiz")
    lines.append("")
    lines.append(f"- **Classification:** {meta.get('classification', 'unknown')}")
    lines.append(f"- **Subject:** {meta.get('subject', 'unknown')}")
    lines.append(f"- **Generation attempts:** {meta.get('attempts', 0)}")

    questions = data.get("questions", [])
    total = sum(q.get("score") or 0 for q in questions)
    if total:
        lines.append(f"- **Total score:** {total}")
    lines.append("")

    for i, q in enumerate(questions, 1):
        kind = _KIND_LABELS.get(q.get("kind", "unknown"), "Question")
        score = f" ({q['score']} pts)" if q.get("score") is not None else ""
        lines.append(f"## {i}. {kind}{score}")
        lines.append("")
        lines.append(q.get("prompt", ""))
        lines.append("")
        for option in q.get("options", []):
            lines.append(f"- {option}")
        if q.get("options"):
            lines.append("")
        lines.append(f"**Answer:** {q.get('correct_answer', '')}")
        lines.append("")
        if q.get("explanation"):
            lines.append(f"*{q['explanation']}*")
            lines.append("")

    distribution = data.get("scoreDistribution")
    if distribution:
        lines.append("## Score Distribution")
        lines.append("")
        lines.append("| Type | Per question | Total |")
        lines.append("|------|--------------|-------|")
        for kind, entry in distribution.items():
            if not isinstance(entry, dict):
                continue
            label = _KIND_LABELS.get(kind, kind)
            lines.append(f"| {label} | {entry.get('perQuestion', '')} | {entry.get('total', '')} |")
        lines.append("")

    return lines


def _render_outline(data: dict) -> list[str]:
    lines = []
    meta = data.get("meta", {})

    lines.append("# Story Outline")
    lines.append("")
    lines.append(f"- **Idea:** {meta.get('idea', '')}")
    lines.append(f"- **Review score:** {meta.get('score', 'n/a')}/100")
    lines.append(f"- **Iterations:** {meta.get('iterations', 0)}")
    if meta.get("fallback"):
        lines.append("- **Note:** no draft reached the acceptance threshold; best-scoring draft kept.")
    lines.append("")
    lines.append("---")
    lines.append("")
    lines.append(data.get("outline", ""))
    lines.append("")

    return lines


def render_markdown(data: dict) -> str:
    """Convert a saved artifact dict into Markdown."""
    if data.get("kind") == "outline":
        lines = _render_outline(data)
    else:
        lines = _render_quiz(data)
    return "\n".join(lines)
