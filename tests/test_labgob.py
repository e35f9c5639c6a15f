import enum
import io
import json
import struct
from dataclasses import dataclass, field

import pytest

from labkit.labgob import (
    LabDecoder,
    LabEncoder,
    error_count,
    register,
    register_name,
)


@dataclass
class T1:
    t1_int0: int = 0
    t1_int1: int = 0
    t1_string0: str = ""
    t1_string1: str = ""


@dataclass
class T2:
    t2_slice: list = field(default_factory=list)
    t2_map: dict = field(default_factory=dict)
    t2_t3: object = None


@dataclass
class T3:
    t3_int999: int = 0


@dataclass(frozen=True)
class T4:
    yes: int
    _no: int


@dataclass
class T5:
    a: int = 0


@dataclass
class T6:
    b: int = 0


class Color(enum.Enum):
    RED = "red"
    BLUE = "blue"


def _roundtrip(*values):
    buf = io.BytesIO()
    enc = LabEncoder(buf)
    for v in values:
        enc.encode(v)
    dec = LabDecoder(io.BytesIO(buf.getvalue()))
    return [dec.decode() for _ in values]


def test_gob():
    e0 = error_count()
    register(T3)

    t1 = T1(t1_int1=1, t1_string1="6.5840")
    t2 = T2(
        t2_slice=[T1(), t1],
        t2_map={99: T1(1, 2, "x", "y")},
        t2_t3=T3(999),
    )
    x0, x1, d1, d2 = _roundtrip(0, 1, t1, t2)

    assert x0 == 0
    assert x1 == 1
    assert d1.t1_int0 == 0
    assert d1.t1_int1 == 1
    assert d1.t1_string0 == ""
    assert d1.t1_string1 == "6.5840"
    assert len(d2.t2_slice) == 2
    assert d2.t2_slice[1].t1_int1 == 1
    assert len(d2.t2_map) == 1
    assert d2.t2_map[99].t1_string1 == "y"
    assert isinstance(d2.t2_t3, T3)
    assert d2.t2_t3.t3_int999 == 999
    assert error_count() == e0


def test_capital():
    e0 = error_count()
    v = [{T4(1, 2): 3}]
    (decoded,) = _roundtrip(v)
    assert error_count() == e0 + 1
    assert decoded == v
    # a class is only reported once
    _roundtrip([{T4(5, 6): 7}])
    assert error_count() == e0 + 1


def test_decoded_value_is_independent_copy():
    original = T2(t2_slice=[T1(t1_int0=5)])
    (copy,) = _roundtrip(original)
    original.t2_slice[0].t1_int0 = 42
    assert copy.t2_slice[0].t1_int0 == 5
    assert copy is not original


def test_builtin_containers_round_trip():
    value = {
        "tuple": (1, "a", None),
        "bytes": b"\x00\xffab",
        "set": {1, 2, 3},
        "frozen": frozenset({"x"}),
        "float": 2.5,
        "flag": True,
        "enum": Color.BLUE,
    }
    (decoded,) = _roundtrip(value)
    assert decoded == value
    assert decoded["flag"] is True
    assert decoded["enum"] is Color.BLUE
    assert isinstance(decoded["tuple"], tuple)


def test_decode_past_end_raises_eof():
    buf = io.BytesIO()
    LabEncoder(buf).encode("one")
    dec = LabDecoder(io.BytesIO(buf.getvalue()))
    assert dec.decode() == "one"
    with pytest.raises(EOFError):
        dec.decode()


def test_truncated_stream_rejected():
    buf = io.BytesIO()
    LabEncoder(buf).encode("something long enough")
    data = buf.getvalue()[:-3]
    with pytest.raises(ValueError):
        LabDecoder(io.BytesIO(data)).decode()


def test_unsupported_type_rejected():
    with pytest.raises(TypeError):
        LabEncoder(io.BytesIO()).encode(object())


def test_self_referencing_value_rejected():
    loop: list = []
    loop.append(loop)
    with pytest.raises(ValueError):
        LabEncoder(io.BytesIO()).encode(loop)


def test_unknown_type_name_rejected():
    body = json.dumps(["o", "nowhere.Missing", {}]).encode()
    data = struct.pack(">I", len(body)) + body
    with pytest.raises(ValueError):
        LabDecoder(io.BytesIO(data)).decode()


def test_register_name_conflicts():
    register_name("labgob-test.T5", T5)
    register_name("labgob-test.T5", T5(1))
    with pytest.raises(ValueError):
        register_name("labgob-test.T5", T6)
    with pytest.raises(ValueError):
        register_name("labgob-test.other", T5)
    (decoded,) = _roundtrip(T5(a=7))
    assert decoded == T5(a=7)


def test_register_rejects_plain_types():
    with pytest.raises(TypeError):
        register(3)