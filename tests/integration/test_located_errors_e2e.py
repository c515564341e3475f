"""
End-to-end tests: parse text, convert, and check that failures point back at
the original characters.
"""

import pytest
from sexpkit import (
    FLOAT, INT, STRING, Constructor, ConversionError, Field, ListOf, Option, ParseError,
    Record, Recursive, Sum, TypeDefinition, Variant, derive,
)
from sexpkit.sexp.parser import Parser

pytestmark = pytest.mark.integration


def _service_type() -> TypeDefinition:
    service = TypeDefinition("service")
    service.define(Record([
        Field("name", STRING),
        Field("port", INT),
        Field("weights", ListOf(FLOAT)),
        Field("backup", Option(Recursive(service))),
    ]))
    return service


CONFIG = """\
((name api)
 (port 8080)
 (weights (0.5 0.25 heavy))
 (backup none))
"""


class TestLocatedConversionErrors:
    def test_error_points_into_text(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        conv = derive(_service_type())
        with pytest.raises(ConversionError) as exc_info:
            conv.of_string(CONFIG, source_file="svc.sexp")
        err = exc_info.value
        assert err.path == ["weights", 2]
        assert (err.location.line, err.location.column) == (3, 21)
        text = str(err)
        assert "svc.sexp:3:21" in text
        assert "3 |  (weights (0.5 0.25 heavy))" in text
        assert "^^^^^" in text
        assert "(at .weights[2])" in text

    def test_parse_and_conversion_errors_are_distinct(self):
        conv = derive(_service_type())
        with pytest.raises(ParseError):
            conv.of_string("((name api)")
        with pytest.raises(ConversionError):
            conv.of_string("((name api))")

    def test_recursive_record_round_trip(self):
        conv = derive(_service_type())
        value = {
            "name": "api",
            "port": 8080,
            "weights": [0.5],
            "backup": {"name": "api-2", "port": 8081, "weights": [], "backup": None},
        }
        text = conv.to_string(value)
        assert text == "((name api) (port 8080) (weights (0.5)) (backup (some ((name api-2) (port 8081) (weights ()) (backup none)))))"
        assert conv.of_string(text) == value


class TestStreamingConversion:
    """Leading forms convert even when a trailing form is malformed"""

    def test_convert_until_parse_error(self):
        t = TypeDefinition("shape")
        t.define(Sum([Constructor("Dot"), Constructor("Circle", [FLOAT])]))
        conv = derive(t)
        converted = []
        with pytest.raises(ParseError) as exc_info:
            for sexp in Parser("shapes.sexp").iter_parse("Dot (Circle 1.5) (Circle"):
                converted.append(conv.of_sexp(sexp))
        assert converted == [Variant("Dot"), Variant("Circle", (1.5,))]
        assert exc_info.value.offset == 17
