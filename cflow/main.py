"""Entry point: runs a pipeline from the terminal, collecting human feedback inline."""

import sys

from cflow.config import get_config
from cflow.context import build_default_context
from cflow.logging_config import setup_logging
from cflow.runner import WorkflowRunner, new_workflow_id


_CHOICES = {"a": "Accept", "r": "Reject", "v": "Revise"}

USAGE = """\
usage: cflow quiz FILE [--count N] [--no-hitl]
       cflow classify FILE
       cflow outline IDEA..."""


def _print_questions(questions: list[dict]) -> None:
    for i, q in enumerate(questions, 1):
        score = f" [{q['score']} pts]" if q.get("score") is not None else ""
        print(f"\n{i}. ({q.get('kind', 'unknown')}){score} {q.get('prompt', '')}")
        for option in q.get("options", []):
            print(f"   {option}")
        print(f"   Answer: {q.get('correct_answer', '')}")


def _collect_feedback(questions: list[dict], timeout: float) -> tuple[str, str | None]:
    """Prompt the user in the terminal for a decision on the generated batch."""
    print("\n--- Review the generated questions ---")
    _print_questions(questions)
    print(f"\nNo answer within {timeout:.0f}s counts as Accept.")

    while True:
        choice = input("[A]ccept, [R]eject or Re[v]ise? ").strip().lower()
        if choice in _CHOICES:
            decision = _CHOICES[choice]
            break
        print("Please enter A, R or V.")

    note = None
    if decision == "Revise":
        note = input("What should change? ").strip() or None
    return decision, note


def run_quiz(runner: WorkflowRunner, file_ref: str, count: int | None) -> int:
    """Run the quiz pipeline, answering the feedback gate from the terminal."""
    from cflow.loader import load_text

    text = load_text(file_ref)
    workflow_id = new_workflow_id()
    channel = runner.ctx.reporter.channel
    events = channel.subscribe(workflow_id)
    timeout = get_config().get("feedback_timeout", 90)

    try:
        runner.run_workflow_async(text, count, workflow_id=workflow_id)
        while True:
            event = events.get()
            if event.event == "workflow_progress":
                print(f"[cflow] {event.node_type}: {event.node_status}"
                      + (f": {event.message}" if event.message else ""))
                if event.node_type == "wait_feedback" and event.node_status == "pending":
                    decision, note = _collect_feedback(event.result_payload["questions"], timeout)
                    runner.submit_feedback(workflow_id, decision, note)
            elif event.event == "workflow_completed":
                print(f"[cflow] Saved to: {event.result_payload['saved_path']}")
                return 0
            else:
                print(f"[cflow] Failed at {event.node_type}: {event.message}", file=sys.stderr)
                return 1
    finally:
        channel.unsubscribe(workflow_id, events)


def main() -> None:
    """CLI entry point."""
    args = sys.argv[1:]
    if not args or args[0] not in ("quiz", "classify", "outline"):
        print(USAGE, file=sys.stderr)
        sys.exit(2)

    command, args = args[0], args[1:]

    hitl_enabled = None
    if "--no-hitl" in args:
        hitl_enabled = False
        args.remove("--no-hitl")

    count = None
    if "--count" in args:
        i = args.index("--count")
        try:
            count = int(args[i + 1])
        except (IndexError, ValueError):
            print("--count needs an integer.", file=sys.stderr)
            sys.exit(2)
        del args[i:i + 2]

    if not args:
        print(USAGE, file=sys.stderr)
        sys.exit(2)

    setup_logging()
    runner = WorkflowRunner(build_default_context(hitl_enabled))
    try:
        if command == "classify":
            result = runner.classify_only(args[0])
            print(f"[cflow] Type: {result['label']}  Subject: {result['subject']}")
            if result.get("error"):
                print(f"[cflow] {result['error']}", file=sys.stderr)
                sys.exit(1)
        elif command == "quiz":
            sys.exit(run_quiz(runner, args[0], count))
        else:
            final_state = runner.run_outline_workflow(" ".join(args))
            if final_state.get("error_message"):
                print(f"[cflow] Failed: {final_state['error_message']}", file=sys.stderr)
                sys.exit(1)
            print(f"[cflow] Score: {final_state.get('review_score')}/100")
            print(f"[cflow] Iterations: {final_state.get('iteration_count')}")
            print(f"[cflow] Output written to: {final_state.get('saved_artifact_path')}")
    finally:
        runner.shutdown(wait=False)


if __name__ == "__main__":
    main()
