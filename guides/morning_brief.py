"""Run a research-then-notify sequence on demand."""

import asyncio

from meop import SequenceRunner, get_repository, load_sequence


async def main():
    """Research a topic and push the findings to Slack and email."""
    repository = get_repository()

    # Steps in the builder's list layout; {{result}} receives the research answer
    sequence = load_sequence(
        {
            "name": "Morning brief",
            "steps": [
                {"kind": "trigger_manual", "label": "Manual"},
                {"kind": "research", "config": {"query": "Overnight market news"}},
                {"kind": "slack", "config": {"channel": "#briefs", "message": "{{result}}"}},
                {
                    "kind": "email",
                    "config": {
                        "to": "team@example.com",
                        "subject": "Morning brief",
                        "message": "Today's brief:\n\n{{result}}",
                    },
                },
            ],
        }
    )
    await repository.save_sequence(sequence)

    # Webhook URLs come from config.yaml or MEOP_WEBHOOK_<KIND>
    runner = SequenceRunner(repository=repository)
    execution = await runner.run(sequence.id, {"query": "fallback topic"})

    print(f"Execution {execution.id}: {execution.status}")
    for result in execution.step_results:
        print(f"  {result.step_label or result.step_kind}: {result.status} {result.error or result.result}")


if __name__ == "__main__":
    asyncio.run(main())
