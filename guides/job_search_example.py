"""Plan and run a job-search workflow, pausing before the email goes out."""

import asyncio
import sys

from intentflow import ToolRegistry, WorkflowEngine, WorkflowStatus, get_status_reporter
from intentflow.tools import DEFAULT_TOOL_SPECS

tools = ToolRegistry(DEFAULT_TOOL_SPECS)


@tools.tool("send_email", communication=True, parameters={"to": "recipient", "subject": "subject", "body": "text"})
async def send_email(to: str, subject: str, body: str, attachments=None) -> str:
    # Replace with a real mail client
    print(f"--> mail to {to}: {subject}\n{body}")
    return "queued"


async def main():
    intent = " ".join(sys.argv[1:]) or (
        "Find backend developer jobs in Hamburg and email the best company "
        "asking about openings"
    )
    status = get_status_reporter("inmemory")
    engine = WorkflowEngine.from_config(tools=tools, status_reporter=status)

    workflow = await engine.start(intent, session_id="guide-session")
    for entry in await status.latest("guide-session"):
        print(f"📋 {entry.message}")

    if workflow.status == WorkflowStatus.WAITING_CONFIRMATION:
        step = workflow.step(workflow.current_step)
        print(f"\n⏸️  Step {step.step_number} needs approval: {step.description}")
        print(step.result)
        approved = input("Approve? [y/N] ").strip().lower() == "y"
        workflow = await engine.confirm(workflow.id, approved)

    print(f"\n✅ Workflow {workflow.id} finished as {workflow.status.value}")


if __name__ == "__main__":
    asyncio.run(main())
