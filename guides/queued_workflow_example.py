"""Example queueing a planned workflow for a worker over Redis.

Start a worker in another shell first:

    INTENTFLOW_TRANSPORT=redis INTENTFLOW_STATUS_BACKEND=redis \
        INTENTFLOW_DATABASE_URL=sqlite:///workflows.db intentflow worker
"""

import asyncio

from intentflow import WorkflowDispatcher, get_engine, get_transport


async def main():
    engine = get_engine()
    workflow = await engine.create_workflow(
        "Search apartments in Berlin under 1500 EUR and summarize the three best",
        session_id="queued-session",
    )
    print(f"📋 Planned workflow {workflow.id} with {len(workflow.steps)} steps")

    async with get_transport() as transport:
        command = await WorkflowDispatcher(transport).dispatch_run(workflow.id)
    print(f"✅ Queued run {command.command_id}")
    print("Follow progress with: intentflow log queued-session")


if __name__ == "__main__":
    asyncio.run(main())
