"""Tests for datakinds module."""

import pytest

from newsclipper.datakinds import (
    PARENT_KINDS,
    DataKind,
    TypedData,
    accepts,
    is_compatible,
    is_empty,
    kind_of,
    unwrap,
)


class TestCompatibility:
    """Tests for kind compatibility."""

    def test_every_kind_has_parent_entry(self):
        """Test the parent table covers the whole closed set."""
        assert set(PARENT_KINDS) == set(DataKind)

    def test_same_kind(self):
        assert is_compatible(DataKind.HASH, DataKind.HASH)

    def test_ancestors(self):
        """Test data is usable wherever an ancestor kind is expected."""
        assert is_compatible(DataKind.HTML, DataKind.STRING)
        assert is_compatible(DataKind.ARRAY_OF_LINK, DataKind.ARRAY_OF_STRING)
        assert is_compatible(DataKind.ARRAY_OF_LINK, DataKind.ARRAY)

    def test_not_descendants(self):
        """Test a parent isn't usable where a child is expected."""
        assert not is_compatible(DataKind.STRING, DataKind.HTML)
        assert not is_compatible(DataKind.ARRAY, DataKind.ARRAY_OF_STRING)

    def test_unrelated(self):
        assert not is_compatible(DataKind.TABLE, DataKind.HASH)

    def test_accepts(self):
        """Test checking against several expected kinds."""
        assert accepts(DataKind.HASH_OF_STRING, [DataKind.STRING, DataKind.HASH])
        assert not accepts(DataKind.THREAD, [DataKind.STRING, DataKind.HASH])


class TestKindOf:
    """Tests for kind_of."""

    @pytest.mark.parametrize("value,expected", [
        ("text", DataKind.STRING),
        (["a", "b"], DataKind.ARRAY_OF_STRING),
        ([{"a": 1}], DataKind.ARRAY_OF_HASH),
        ([], DataKind.ARRAY),
        ([1, "a"], DataKind.ARRAY),
        ({"a": "b"}, DataKind.HASH_OF_STRING),
        ({"a": [1]}, DataKind.HASH),
    ])
    def test_inferred(self, value, expected):
        assert kind_of(value) == expected

    def test_tagged(self):
        """Test tagged data reports its own kind."""
        assert kind_of(TypedData(DataKind.LINK, "http://x")) == DataKind.LINK

    def test_unknown(self):
        with pytest.raises(TypeError):
            kind_of(42)


class TestValues:
    """Tests for unwrap and is_empty."""

    def test_unwrap(self):
        assert unwrap(TypedData(DataKind.HTML, "<p>")) == "<p>"
        assert unwrap("plain") == "plain"

    @pytest.mark.parametrize("value", [None, "", [], {}, TypedData(DataKind.STRING, "")])
    def test_empty(self, value):
        assert is_empty(value)

    @pytest.mark.parametrize("value", ["x", [0], {"a": ""}, TypedData(DataKind.ARRAY, [1])])
    def test_not_empty(self, value):
        assert not is_empty(value)
