import pytest

from resizeflow.bindings import parse_binding
from resizeflow.context import ContextWriteError, ExecutionContext
from resizeflow.errors import BindingError


def test_outputs_are_write_once():
    context = ExecutionContext()
    context.record("Describe", "State", "running")
    with pytest.raises(ContextWriteError):
        context.record("Describe", "State", "stopped")
    assert context.get("Describe", "State") == "running"


def test_recorded_values_are_copied():
    context = ExecutionContext()
    tags = [{"Key": "Name", "Value": "a"}]
    context.record("Describe", "Tags", tags)
    tags.append({"Key": "Owner", "Value": "b"})
    context.get("Describe", "Tags").clear()
    assert context.get("Describe", "Tags") == [{"Key": "Name", "Value": "a"}]


def test_missing_output_raises_binding_error():
    context = ExecutionContext()
    assert not context.has("Describe", "State")
    with pytest.raises(BindingError):
        context.get("Describe", "State")


def test_resolve_parameters_and_outputs():
    context = ExecutionContext({"InstanceId": "i-1"})
    context.record_many("Describe", {"State": "running", "Zone": "us-east-1b"})
    inputs = context.resolve_inputs(
        {
            "InstanceId": parse_binding("{{ InstanceId }}"),
            "Commands": parse_binding(["echo", "{{ Describe.State }}"]),
            "Target": parse_binding({"Zone": "{{ Describe.Zone }}"}),
        }
    )
    assert inputs == {
        "InstanceId": "i-1",
        "Commands": ["echo", "running"],
        "Target": {"Zone": "us-east-1b"},
    }


def test_first_of_skips_empty_values():
    context = ExecutionContext({"InstancePlatform": ""})
    context.record("Describe", "Platform", "Linux/UNIX")
    binding = parse_binding(
        {"firstOf": ["{{ InstancePlatform }}", "{{ Describe.Platform }}"]}
    )
    assert context.resolve(binding) == "Linux/UNIX"


def test_first_of_falls_back_to_last_empty_value():
    context = ExecutionContext({"ReservationName": ""})
    binding = parse_binding({"firstOf": ["{{ ReservationName }}", "{{ Missing.Output }}"]})
    assert context.resolve(binding) == ""


def test_first_of_with_no_resolvable_option():
    context = ExecutionContext()
    with pytest.raises(BindingError):
        context.resolve(parse_binding({"firstOf": ["{{ A.B }}", "{{ C.D }}"]}))


def test_snapshot_is_detached():
    context = ExecutionContext()
    context.record("Describe", "State", "running")
    snapshot = context.snapshot()
    snapshot["Describe"]["State"] = "stopped"
    assert context.outputs_of("Describe") == {"State": "running"}
