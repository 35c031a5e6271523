"""Queue a sequence run and process it with a worker in the same process."""

import asyncio

from meop import RunWorker, SequenceRunner, enqueue_run, get_repository, get_transport, load_sequence


async def main():
    transport = get_transport()
    repository = get_repository()

    sequence = load_sequence(
        {
            "name": "Reminder",
            "steps": [
                {"kind": "delay", "config": {"delayMinutes": 0.05}},
                {"kind": "condition", "config": {"condition": "always"}},
            ],
        }
    )
    await repository.save_sequence(sequence)

    execution_id = await enqueue_run(transport, sequence.id)
    print(f"Queued execution {execution_id}")

    # Workers run with may_block=True, so the delay really waits
    worker = RunWorker(transport, SequenceRunner(repository=repository))
    await worker.start(lifespan=10)

    execution = await repository.get_execution(execution_id)
    print(f"Execution {execution_id}: {execution.status if execution else 'not processed'}")


if __name__ == "__main__":
    asyncio.run(main())
