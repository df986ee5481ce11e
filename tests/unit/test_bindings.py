import pytest

from resizeflow.bindings import (
    FirstOfBinding,
    ListBinding,
    LiteralBinding,
    MappingBinding,
    ReferenceBinding,
    iter_references,
    parse_binding,
)
from resizeflow.errors import ConfigurationError


def test_whole_value_parameter_reference():
    assert parse_binding("{{ InstanceId }}") == ReferenceBinding(name="InstanceId")
    assert parse_binding("{{InstanceId}}") == ReferenceBinding(name="InstanceId")


def test_step_output_reference():
    binding = parse_binding("{{ CreateReservation.CapacityReservationId }}")
    assert binding == ReferenceBinding(
        name="CapacityReservationId", step="CreateReservation"
    )
    assert str(binding) == "{{ CreateReservation.CapacityReservationId }}"


def test_plain_values_are_literals():
    assert parse_binding("m5.large") == LiteralBinding("m5.large")
    assert parse_binding(5) == LiteralBinding(5)
    assert parse_binding(["active"]) == LiteralBinding(["active"])
    assert parse_binding({"Key": "Name"}) == LiteralBinding({"Key": "Name"})


def test_embedded_reference_is_rejected():
    with pytest.raises(ConfigurationError):
        parse_binding("resize-{{ InstanceId }}")


def test_literal_wrapper_protects_braces():
    script = 'echo "{{ not a reference }}"'
    assert parse_binding({"literal": [script]}) == LiteralBinding([script])


def test_first_of_parses_each_option():
    binding = parse_binding({"firstOf": ["{{ ReservationName }}", "{{ InstanceId }}"]})
    assert isinstance(binding, FirstOfBinding)
    assert [str(ref) for ref in iter_references(binding)] == [
        "{{ ReservationName }}",
        "{{ InstanceId }}",
    ]


def test_first_of_requires_options():
    with pytest.raises(ConfigurationError):
        parse_binding({"firstOf": []})


def test_nested_references_are_found():
    binding = parse_binding(
        {"Ids": ["{{ InstanceId }}", "fixed"], "Zone": "{{ Describe.AvailabilityZone }}"}
    )
    assert isinstance(binding, MappingBinding)
    names = {(ref.step, ref.name) for ref in iter_references(binding)}
    assert names == {(None, "InstanceId"), ("Describe", "AvailabilityZone")}


def test_list_with_reference_is_list_binding():
    binding = parse_binding(["echo", "{{ Describe.State }}"])
    assert isinstance(binding, ListBinding)
    assert binding.items[0] == LiteralBinding("echo")
