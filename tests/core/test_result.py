"""Tests for blockseq.core.result module."""

import json

import pytest

from blockseq.core.errors import ParseError
from blockseq.core.result import Err, Ok, Result, partition_results, try_result


class TestOk:
    """Test Ok class."""

    def test_create_ok(self):
        result = Ok(42)
        assert result.value == 42
        assert result.is_ok() is True
        assert result.is_err() is False

    def test_unwrap_and_unwrap_or(self):
        assert Ok("hello").unwrap() == "hello"
        assert Ok(10).unwrap_or(99) == 10

    def test_map_chaining(self):
        result = Ok(3).map(lambda x: x * 2).map(lambda x: x + 1)
        assert result.unwrap() == 7

    def test_flat_map(self):
        def halve(x: int) -> Result[int]:
            if x % 2:
                return Err(ValueError("odd"))
            return Ok(x // 2)

        assert Ok(4).flat_map(halve).unwrap() == 2
        assert Ok(3).flat_map(halve).is_err()

    def test_map_err_no_op(self):
        result = Ok(42).map_err(lambda e: ValueError("new"))
        assert result.unwrap() == 42

    def test_to_dict(self):
        assert Ok(1).to_dict() == {"ok": True, "value": 1}


class TestErr:
    """Test Err class."""

    def test_unwrap_raises(self):
        with pytest.raises(ValueError, match="boom"):
            Err(ValueError("boom")).unwrap()

    def test_unwrap_or(self):
        assert Err(ValueError("x")).unwrap_or(5) == 5

    def test_map_is_no_op(self):
        error = ValueError("x")
        result = Err(error).map(lambda v: v + 1)
        assert result.is_err()
        assert result.error is error

    def test_map_err(self):
        result = Err(KeyError("k")).map_err(lambda e: ParseError(str(e)))
        assert isinstance(result.error, ParseError)

    def test_to_dict_blockseq_error(self):
        d = Err(ParseError("bad")).to_dict()
        assert d["ok"] is False
        assert d["error"]["category"] == "PARSE"

    def test_to_dict_plain_exception(self):
        d = Err(ValueError("bad")).to_dict()
        assert d["error"] == {"error_type": "ValueError", "message": "bad"}


class TestMatching:
    """Results are consumed with structural pattern matching."""

    def test_match_ok(self):
        match Ok(5):
            case Ok(value):
                assert value == 5
            case Err():
                pytest.fail("expected Ok")

    def test_match_err(self):
        match Err(ValueError("x")):
            case Ok():
                pytest.fail("expected Err")
            case Err(error):
                assert isinstance(error, ValueError)


class TestHelpers:
    def test_try_result_ok(self):
        assert try_result(json.loads, '{"a": 1}').unwrap() == {"a": 1}

    def test_try_result_err(self):
        result = try_result(json.loads, "invalid")
        assert result.is_err()
        assert isinstance(result.error, json.JSONDecodeError)

    def test_partition_results(self):
        e = ValueError("x")
        values, errors = partition_results([Ok(1), Err(e), Ok(3)])
        assert values == [1, 3]
        assert errors == [e]
