"""Build a custom workflow, export it as YAML and run it."""

import asyncio
import sys

from resizeflow import (
    ActionType,
    InMemoryResourceClient,
    OnFailure,
    OutputSpec,
    WorkflowBuilder,
    WorkflowEngine,
    dump_workflow,
    load_workflow,
)


def build_restart_workflow():
    return (
        WorkflowBuilder("RestartInstance", description="Stop and start an instance")
        .add_parameter("InstanceId", description="Instance to restart")
        .add_step(
            "DescribeInstance",
            ActionType.DESCRIBE_RESOURCE,
            inputs={"InstanceId": "{{ InstanceId }}"},
            outputs=[OutputSpec(name="State", selector="$.State.Name")],
        )
        .add_step(
            "AnnounceRestart",
            ActionType.RUN_REMOTE_COMMAND,
            inputs={
                "InstanceId": "{{ InstanceId }}",
                "Commands": ["wall 'Restarting for maintenance'"],
            },
            on_failure=OnFailure.CONTINUE,
        )
        .add_step("StopInstance", ActionType.STOP_RESOURCE, inputs={"InstanceId": "{{ InstanceId }}"})
        .add_step(
            "WaitForInstanceStopped",
            ActionType.WAIT_FOR_STOPPED,
            inputs={"InstanceId": "{{ InstanceId }}", "PollIntervalSeconds": 1},
            timeout_seconds=300,
        )
        .add_step("StartInstance", ActionType.START_RESOURCE, inputs={"InstanceId": "{{ InstanceId }}"})
        .add_step(
            "WaitForInstanceRunning",
            ActionType.WAIT_FOR_RUNNING,
            inputs={"InstanceId": "{{ InstanceId }}", "PollIntervalSeconds": 1},
            timeout_seconds=300,
        )
        .add_step("End", ActionType.END)
        .build()
    )


async def main():
    workflow = build_restart_workflow()
    document = dump_workflow(workflow)
    print(document)

    if len(sys.argv) > 1:
        with open(sys.argv[1], "w") as f:
            f.write(document)
        workflow = load_workflow(sys.argv[1])
        print(f"💾 Saved and reloaded {workflow.name} from {sys.argv[1]}")

    client = InMemoryResourceClient()
    client.add_instance("i-0123456789abcdef0")
    result = await WorkflowEngine(client).run(workflow, {"InstanceId": "i-0123456789abcdef0"})
    print(f"✅ {workflow.name}: {result.status.value}")
    print(f"📋 Steps: {' -> '.join(result.executed_steps)}")


if __name__ == "__main__":
    asyncio.run(main())
