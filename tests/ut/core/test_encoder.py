import datetime

import pytest

from qtwire.core.codec.errors import EncodeError, OversizedPacketError, UnregisteredUserTypeError
from qtwire.core.codec.writer import Encoder, time_to_msecs
from qtwire.core.models.config import CodecConfig
from qtwire.core.models.qtypes import QType, QValue, VARIANT


def h(text: str) -> bytes:
    return bytes.fromhex(text)


@pytest.mark.ut
def test_encode_framed_string(encoder):
    assert encoder.encode_framed("hi", QType.STRING) == h("00000008 00000004 00680069")


@pytest.mark.ut
def test_encode_framed_null_string(encoder):
    assert encoder.encode_framed(None, QType.STRING) == h("00000004 FFFFFFFF")
    assert encoder.encode_framed(QValue.string(None), QType.STRING) == h("00000004 FFFFFFFF")


@pytest.mark.ut
@pytest.mark.parametrize("obj, expected", [
    (True, QValue.boolean(True)),
    (5, QValue.uint32(5)),
    (1.5, QValue.double(1.5)),
    ("s", QValue.string("s")),
    (b"x", QValue.bytearray(b"x")),
    (None, QValue.invalid()),
    ([1], QValue.list([QValue.uint32(1)])),
    ({"a": 1}, QValue.map([("a", QValue.uint32(1))])),
    (datetime.time(1, 2), QValue.time(datetime.time(1, 2))),
    (datetime.datetime(2000, 1, 1, 3), QValue.datetime(datetime.datetime(2000, 1, 1, 3))),
    (datetime.date(2000, 1, 1), QValue.datetime(datetime.datetime(2000, 1, 1))),
])
def test_coerce_default_types(encoder, obj, expected):
    assert encoder.coerce(obj) == expected


@pytest.mark.ut
def test_coerce_keeps_qvalues(encoder):
    value = QValue.int64(-3)
    assert encoder.coerce(value) is value


@pytest.mark.ut
def test_coerce_negative_int_needs_explicit_type(encoder):
    with pytest.raises(EncodeError, match="UINT"):
        encoder.encode(-5)

    assert encoder.encode(QValue.int32(-1)) == h("FFFFFFFF")


@pytest.mark.ut
def test_coerce_unsupported(encoder):
    with pytest.raises(EncodeError, match="Unsupported"):
        encoder.encode(object())

    with pytest.raises(EncodeError, match="map keys"):
        encoder.encode({1: "x"})


@pytest.mark.ut
def test_encode_map_is_not_sorted(encoder):
    assert encoder.encode({"b": 1, "a": True}) == h(
        "00000002"
        "00000002 0062 00000003 00 00000001"
        "00000002 0061 00000001 00 01"
    )


@pytest.mark.ut
def test_encode_map_duplicate_keys(encoder):
    assert encoder.encode([("k", 1), ("k", 2)], QType.MAP) == h(
        "00000002"
        "00000002 006B 00000003 00 00000001"
        "00000002 006B 00000003 00 00000002"
    )


@pytest.mark.ut
def test_encode_list_in_variant(encoder):
    assert encoder.encode([1, "x"], VARIANT) == h(
        "00000009 00 00000002"
        "00000003 00 00000001"
        "0000000A 00 00000002 0078"
    )


@pytest.mark.ut
@pytest.mark.parametrize("obj, shape, expected", [
    (7, QType.INT64, "0000000000000007"),
    (-1, QType.SHORT, "FFFF"),
    (65, QType.CHAR, "41"),
    ("\xe9", QType.CHAR, "E9"),
    (["a", None], QType.STRINGLIST, "00000002 00000002 0061 FFFFFFFF"),
    (datetime.time(1, 0), QType.TIME, "0036EE80"),
    (None, QType.TIME, "FFFFFFFF"),
    (None, QType.BYTEARRAY, "FFFFFFFF"),
    (None, QType.DATETIME, "00000000 FFFFFFFF 00"),
    (None, QType.INVALID, ""),
])
def test_encode_with_shape(encoder, obj, shape, expected):
    assert encoder.encode(obj, shape) == h(expected)


@pytest.mark.ut
@pytest.mark.parametrize("obj, shape", [
    (70000, QType.SHORT),
    (-1, QType.UINT),
    (3.5, QType.INT),
    ("€", QType.CHAR),
    ("ab", QType.CHAR),
    ("abc", QType.STRINGLIST),
    (QValue.int32(1), QType.UINT),
    (1, QType.USERTYPE),
])
def test_encode_invalid_values(encoder, obj, shape):
    with pytest.raises(EncodeError):
        encoder.encode(obj, shape)


@pytest.mark.ut
def test_encode_datetime(encoder):
    utc = datetime.datetime(2000, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
    plus_one = datetime.datetime(2000, 1, 1, 13, 0, tzinfo=datetime.timezone(datetime.timedelta(hours=1)))

    assert encoder.encode(utc) == h("00256859 02932E00 01")
    assert encoder.encode(plus_one) == h("00256859 02932E00 01")
    assert encoder.encode(datetime.date(2000, 1, 1)) == h("00256859 00000000 00")


@pytest.mark.ut
def test_encode_null_values_in_variant(encoder):
    assert encoder.encode(QValue(QType.INT), VARIANT) == h("00000002 01")
    assert encoder.encode(QValue.string(None), VARIANT) == h("0000000A 00 FFFFFFFF")


@pytest.mark.ut
def test_encode_null_scalar_outside_variant(encoder):
    with pytest.raises(EncodeError, match="QVariant"):
        encoder.encode(QValue(QType.INT))


@pytest.mark.ut
def test_encode_variant_without_null_flag(registry):
    encoder = Encoder(registry, CodecConfig(variant_null_flag=False))

    assert encoder.encode(QValue.int32(1), VARIANT) == h("00000002 00000001")
    with pytest.raises(EncodeError, match="null flag"):
        encoder.encode(QValue(QType.INT), VARIANT)


@pytest.mark.ut
def test_encode_composite_user_type(encoder):
    data = encoder.encode({"id": 7, "network": 2, "type": 4, "name": b"abc"}, "BufferInfo")
    assert data == h("00000007 00000002 0004 00000003 616263")


@pytest.mark.ut
def test_encode_user_type_in_variant(encoder):
    data = encoder.encode(QValue.user("NetworkId", 5), VARIANT)
    assert data == h("0000007F 00 0000000A 4E6574776F726B496400 00000005")


@pytest.mark.ut
def test_encode_user_type_missing_field(encoder):
    with pytest.raises(EncodeError, match="misses field 'network'"):
        encoder.encode({"id": 1}, "BufferInfo")


@pytest.mark.ut
def test_encode_user_type_wrong_name(encoder):
    with pytest.raises(EncodeError):
        encoder.encode(QValue.user("NetworkId", 1), "BufferInfo")


@pytest.mark.ut
def test_encode_unregistered_user_type(encoder):
    with pytest.raises(UnregisteredUserTypeError):
        encoder.encode(1, "Nope")


@pytest.mark.ut
def test_frame_rejects_oversized_body(registry):
    encoder = Encoder(registry, CodecConfig(max_packet_size=4))

    assert encoder.frame(b"1234") == h("00000004 31323334")
    with pytest.raises(OversizedPacketError):
        encoder.frame(b"12345")


@pytest.mark.ut
def test_time_to_msecs():
    assert time_to_msecs(datetime.time(23, 59, 59, 999999)) == 86_399_999


@pytest.mark.ut
def test_encode_default_variant_like_qt(encoder):
    assert encoder.encode(None, VARIANT) == h("00000000 01")
    assert encoder.encode(QValue.invalid(), VARIANT) == h("00000000 01")
    assert encoder.encode(QValue(QType.INVALID), VARIANT) == h("00000000 00")


@pytest.mark.ut
def test_encode_flagged_null_keeps_the_flag(encoder):
    assert encoder.encode(QValue(QType.STRING, null=True), VARIANT) == h("0000000A 01")
    assert encoder.encode(QValue(QType.DATETIME, null=True), VARIANT) == h("00000010 01")


@pytest.mark.ut
def test_encode_flagged_null_without_flag_support(registry):
    encoder = Encoder(registry, CodecConfig(variant_null_flag=False))

    assert encoder.encode(QValue(QType.STRING, null=True), VARIANT) == h("0000000A FFFFFFFF")
    assert encoder.encode(QValue.invalid(), VARIANT) == h("00000000")
