"""Tests for tagfilter.metadata_chain."""
from tagfilter.metadata_chain import DeclarationLineIndex, DeprecationSilencer, ascend


class TestAscend:
    def test_example_then_groups(self) -> None:
        outer = {"description": "outer"}
        inner = {"description": "inner", "parent_example_group": outer}
        example = {"description": "it", "example_group": inner}
        assert [m["description"] for m in ascend(example)] == ["it", "inner", "outer"]

    def test_group_uses_parent_key(self) -> None:
        outer = {"description": "outer"}
        inner = {"description": "inner", "parent_example_group": outer}
        assert [m["description"] for m in ascend(inner)] == ["inner", "outer"]

    def test_restartable(self) -> None:
        example = {"example_group": {"description": "g"}}
        assert list(ascend(example)) == list(ascend(example))

    def test_lone_metadata(self) -> None:
        meta = {"description": "solo"}
        assert list(ascend(meta)) == [meta]


class TestDeclarationLineIndex:
    def test_preceding_line(self) -> None:
        index = DeclarationLineIndex([18, 3])
        assert index.preceding_declaration_line(5) == 3
        assert index.preceding_declaration_line(18) == 18
        assert index.preceding_declaration_line(40) == 18

    def test_before_first(self) -> None:
        assert DeclarationLineIndex([3]).preceding_declaration_line(1) is None

    def test_record_keeps_sorted_unique(self) -> None:
        index = DeclarationLineIndex()
        for line in (10, 2, 10, 7):
            index.record(line)
        assert index.lines == (2, 7, 10)


class TestDeprecationSilencer:
    def test_scoped(self) -> None:
        silencer = DeprecationSilencer()
        assert not silencer.active
        with silencer.silenced():
            assert silencer.active
        assert not silencer.active
