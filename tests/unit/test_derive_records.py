"""
Tests for record derivation: field encodings, defaults, drop policies and
field-level errors.
"""

from dataclasses import dataclass, field as dc_field
from typing import List, Optional

import numpy as np
import pytest
from sexpkit.shared.errors import (
    DescriptorError, DuplicateFieldError, MissingFieldError, UnexpectedShapeError, UnknownFieldError,
)
from sexpkit.types import (
    BOOL, FLOAT, INT, STRING, Array, DropPolicy, Field, ListOf, Optionality, Option, Record,
)


@dataclass
class Point:
    x: Optional[int]
    y: Optional[int]


@dataclass
class Settings:
    name: str
    retries: int = 3
    tags: List[str] = dc_field(default_factory=list)


SCENARIO = Record(
    [
        Field("x", Option(INT)),
        Field("y", INT, optionality=Optionality.SEXP_OPTION),
    ],
    record_type=Point,
)


class TestRecordScenario:
    """Option and sexp_option fields side by side"""

    def test_both_present(self, deriver):
        conv = deriver.derive(SCENARIO)
        assert conv.to_string(Point(1, 2)) == "((x (some 1)) (y 2))"
        assert conv.of_string("((x (some 1)) (y 2))") == Point(1, 2)

    def test_both_none(self, deriver):
        conv = deriver.derive(SCENARIO)
        assert conv.to_string(Point(None, None)) == "((x none))"
        assert conv.of_string("((x none))") == Point(None, None)

    def test_field_order_on_read_is_free(self, deriver):
        conv = deriver.derive(SCENARIO)
        assert conv.of_string("((y 5) (x none))") == Point(None, 5)

    def test_required_field_missing(self, deriver):
        conv = deriver.derive(SCENARIO)
        with pytest.raises(MissingFieldError) as exc_info:
            conv.of_string("((y 2))")
        assert exc_info.value.field == "x"


class TestDictRecords:
    """Records without a record_type read and write dicts"""

    def test_round_trip(self, deriver):
        conv = deriver.derive(Record([Field("a", INT), Field("b", STRING)]))
        value = {"a": 1, "b": "two words"}
        assert conv.to_string(value) == '((a 1) (b "two words"))'
        assert conv.of_sexp(conv.to_sexp(value)) == value

    def test_all_missing_fields_reported(self, deriver):
        conv = deriver.derive(Record([Field("a", INT), Field("b", INT), Field("c", INT)]))
        with pytest.raises(MissingFieldError) as exc_info:
            conv.of_string("((b 1))")
        assert exc_info.value.fields == ("a", "c")

    def test_nested_field_error_has_path(self, deriver):
        inner = Record([Field("port", INT)])
        conv = deriver.derive(Record([Field("server", inner)]))
        with pytest.raises(UnexpectedShapeError) as exc_info:
            conv.of_string("((server ((port http))))")
        err = exc_info.value
        assert err.path == ["server", "port"]
        assert "(at .server.port)" in err.headline()
        assert err.location.column == 17


class TestDefaults:
    """Absent fields with defaults"""

    def test_field_without_descriptor(self, deriver):
        desc = Record([Field("name", STRING), Field("tags", optionality=Optionality.SEXP_LIST)])
        with pytest.raises(DescriptorError, match="no descriptor"):
            deriver.derive(desc)

    def test_default_and_sexp_list(self, deriver):
        desc = Record(
            [
                Field("name", STRING),
                Field("retries", INT, default=3),
                Field("tags", STRING, optionality=Optionality.SEXP_LIST),
            ],
            record_type=Settings,
        )
        conv = deriver.derive(desc)
        assert conv.of_string("((name svc))") == Settings("svc", 3, [])
        assert conv.to_string(Settings("svc", 5, ["a", "b"])) == "((name svc) (retries 5) (tags (a b)))"
        assert conv.to_string(Settings("svc", 3, [])) == "((name svc) (retries 3))"

    def test_mutable_default_is_copied(self, deriver):
        shared = [1, 2]
        conv = deriver.derive(Record([Field("n", INT), Field("xs", ListOf(INT), default=shared)]))
        first = conv.of_string("((n 1))")
        first["xs"].append(3)
        second = conv.of_string("((n 2))")
        assert second == {"n": 2, "xs": [1, 2]}
        assert shared == [1, 2]

    def test_absent_option_field_reads_none(self, deriver):
        conv = deriver.derive(Record([Field("o", Option(INT), optionality=Optionality.OPTION)]))
        value = conv.of_string("()")
        assert value == {"o": None}
        assert conv.to_string(value) == "((o none))"

    def test_option_field_needs_option_descriptor(self, deriver):
        with pytest.raises(DescriptorError, match="Option descriptor"):
            deriver.derive(Record([Field("o", INT, optionality=Optionality.OPTION)]))

    def test_option_field_with_default(self, deriver):
        conv = deriver.derive(Record([Field("o", INT, optionality=Optionality.OPTION, default=4)]))
        value = conv.of_string("()")
        assert value == {"o": 4}
        assert conv.to_string(value) == "((o 4))"

    def test_sexp_option_rejects_non_none_default(self, deriver):
        with pytest.raises(DescriptorError, match="sexp_option"):
            deriver.derive(Record([
                Field("y", INT, optionality=Optionality.SEXP_OPTION, default=1, drop=DropPolicy.IF_DEFAULT),
            ]))


class TestDropPolicies:
    """Fields suppressed on write"""

    def test_drop_if_default(self, deriver):
        conv = deriver.derive(Record([Field("n", INT, default=0, drop=DropPolicy.IF_DEFAULT)]))
        assert conv.to_string({"n": 0}) == "()"
        assert conv.to_string({"n": 1}) == "((n 1))"
        assert conv.of_string("()") == {"n": 0}

    def test_drop_if_default_sexp(self, deriver):
        conv = deriver.derive(Record([Field("f", FLOAT, default=1.0, drop=DropPolicy.IF_DEFAULT_SEXP)]))
        assert conv.to_string({"f": 1.0}) == "()"
        assert conv.to_string({"f": 1.5}) == "((f 1.5))"

    def test_drop_if_predicate(self, deriver):
        conv = deriver.derive(Record([Field("n", INT, default=0, drop_if=lambda v: v < 0)]))
        assert conv.to_string({"n": -3}) == "()"
        assert conv.to_string({"n": 0}) == "((n 0))"

    def test_drop_if_default_with_array(self, deriver):
        default = np.array([1, 2])
        conv = deriver.derive(Record([Field("a", Array(INT), default=default, drop=DropPolicy.IF_DEFAULT)]))
        assert conv.to_string({"a": np.array([1, 2])}) == "()"
        assert conv.to_string({"a": np.array([1, 3])}) == "((a (1 3)))"

    def test_drop_if_default_requires_default(self, deriver):
        with pytest.raises(DescriptorError):
            deriver.derive(Record([Field("n", INT, drop=DropPolicy.IF_DEFAULT)]))


class TestSexpFieldKinds:
    """sexp_bool, sexp_list, sexp_array and sexp_option fields"""

    def test_sexp_bool(self, deriver):
        conv = deriver.derive(Record([Field("verbose", optionality=Optionality.SEXP_BOOL)]))
        assert conv.to_string({"verbose": True}) == "((verbose))"
        assert conv.to_string({"verbose": False}) == "()"
        assert conv.of_string("((verbose))") == {"verbose": True}
        assert conv.of_string("()") == {"verbose": False}

    def test_sexp_bool_with_value_is_error(self, deriver):
        conv = deriver.derive(Record([Field("verbose", optionality=Optionality.SEXP_BOOL)]))
        with pytest.raises(UnexpectedShapeError):
            conv.of_string("((verbose true))")

    def test_sexp_array(self, deriver):
        conv = deriver.derive(Record([Field("v", FLOAT, optionality=Optionality.SEXP_ARRAY)]))
        value = conv.of_string("((v (1.5 2.5)))")["v"]
        assert isinstance(value, np.ndarray)
        assert value.dtype == np.float64
        assert value.tolist() == [1.5, 2.5]
        empty = conv.of_string("()")["v"]
        assert empty.shape == (0,)
        assert conv.to_string({"v": np.array([], dtype=np.float64)}) == "()"

    def test_sexp_option_omits_none(self, deriver):
        conv = deriver.derive(Record([Field("y", BOOL, optionality=Optionality.SEXP_OPTION)]))
        assert conv.to_string({"y": None}) == "()"
        assert conv.to_string({"y": False}) == "((y false))"
        assert conv.of_string("()") == {"y": None}


class TestFieldErrors:
    """Unknown, duplicate and malformed entries"""

    def test_unknown_field(self, deriver):
        conv = deriver.derive(Record([Field("a", INT)]))
        with pytest.raises(UnknownFieldError) as exc_info:
            conv.of_string("((a 1) (b 2))")
        assert exc_info.value.field == "b"
        assert "known fields: a" in exc_info.value.help_text()

    def test_allow_extra_fields(self, deriver):
        conv = deriver.derive(Record([Field("a", INT)], allow_extra_fields=True))
        assert conv.of_string("((a 1) (b 2))") == {"a": 1}

    def test_extra_fields_switch(self, deriver, reset_flags):
        conv = deriver.derive(Record([Field("a", INT)]))
        reset_flags.set(check_extra_fields=False)
        assert conv.of_string("((a 1) (zzz ignored))") == {"a": 1}

    def test_duplicate_field(self, deriver):
        conv = deriver.derive(Record([Field("a", INT)]))
        with pytest.raises(DuplicateFieldError) as exc_info:
            conv.of_string("((a 1) (a 2))")
        assert exc_info.value.field == "a"
        assert exc_info.value.location.start == 7

    def test_entry_not_a_pair(self, deriver):
        conv = deriver.derive(Record([Field("a", INT)]))
        with pytest.raises(UnexpectedShapeError):
            conv.of_string("(a 1)")

    def test_entry_with_two_values(self, deriver):
        conv = deriver.derive(Record([Field("a", INT)]))
        with pytest.raises(UnexpectedShapeError, match="got 2 values"):
            conv.of_string("((a 1 2))")

    def test_not_a_list(self, deriver):
        conv = deriver.derive(Record([Field("a", INT)]))
        with pytest.raises(UnexpectedShapeError):
            conv.of_string("a")

    def test_duplicate_declared_field(self, deriver):
        with pytest.raises(DescriptorError):
            deriver.derive(Record([Field("a", INT), Field("a", STRING)]))
