import pytest

from resizeflow.contracts import ValueType
from resizeflow.errors import ApiError, ConfigurationError
from resizeflow.selectors import coerce, parse_selector, select

DOCUMENT = {
    "Reservations": [
        {"Instances": [{"InstanceId": "i-1", "State": {"Name": "running"}}]}
    ],
    "State": "active",
}


def test_parse_selector_segments():
    assert parse_selector("$") == ()
    assert parse_selector("$.Reservations[0].Instances[0].State.Name") == (
        "Reservations",
        0,
        "Instances",
        0,
        "State",
        "Name",
    )


@pytest.mark.parametrize("selector", ["State.Name", "$..State", "$.State[x]", "$.[0]"])
def test_parse_selector_rejects_bad_syntax(selector):
    with pytest.raises(ConfigurationError):
        parse_selector(selector)


def test_select_nested_value():
    assert select(DOCUMENT, "$.Reservations[0].Instances[0].State.Name") == "running"
    assert select(DOCUMENT, "$.State") == "active"
    assert select(DOCUMENT, "$") is DOCUMENT


@pytest.mark.parametrize("selector", ["$.Missing", "$.Reservations[3]", "$.State.Name"])
def test_select_miss_raises_api_error(selector):
    with pytest.raises(ApiError):
        select(DOCUMENT, selector)


@pytest.mark.parametrize(
    "value,value_type,expected",
    [
        (5, ValueType.STRING, "5"),
        ("7", ValueType.INTEGER, 7),
        (3.0, ValueType.INTEGER, 3),
        ("0.5", ValueType.NUMBER, 0.5),
        ("yes", ValueType.BOOLEAN, True),
        ("False", ValueType.BOOLEAN, False),
        ("a, b,c", ValueType.STRING_LIST, ["a", "b", "c"]),
        ([1, 2], ValueType.STRING_LIST, ["1", "2"]),
        ([{"Key": "Name"}], ValueType.MAP_LIST, [{"Key": "Name"}]),
    ],
)
def test_coerce(value, value_type, expected):
    assert coerce(value, value_type) == expected


@pytest.mark.parametrize(
    "value,value_type",
    [
        ("many", ValueType.INTEGER),
        (True, ValueType.INTEGER),
        (2.9, ValueType.INTEGER),
        ("2.9", ValueType.INTEGER),
        (float("inf"), ValueType.INTEGER),
        ("maybe", ValueType.BOOLEAN),
        ({"a": 1}, ValueType.STRING),
    ],
)
def test_coerce_rejects_mismatched_values(value, value_type):
    with pytest.raises(ConfigurationError):
        coerce(value, value_type)
