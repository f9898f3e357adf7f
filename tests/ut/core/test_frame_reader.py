import pytest

from qtwire.core.codec.errors import (
    MalformedBodyError,
    OversizedPacketError,
    StreamFailedError,
    TruncatedStreamError,
)
from qtwire.core.codec.reader import Decoder
from qtwire.core.framing.reader import FrameReader
from qtwire.core.models.config import CodecConfig
from qtwire.core.models.qtypes import QType, QValue

HI = bytes.fromhex("00000008 00000004 00680069")
NULL = bytes.fromhex("00000004 FFFFFFFF")


def string_reader(registry=None, progress=None, **overrides) -> FrameReader:
    config = CodecConfig(message_shape=QType.STRING, **overrides)
    return FrameReader(Decoder(registry, config), config, progress=progress)


@pytest.mark.ut
def test_single_packet():
    reader = string_reader()
    assert reader.feed(HI) == [QValue.string("hi")]
    assert reader.pending == 0
    assert reader.expected_size is None


@pytest.mark.ut
def test_two_packets_in_one_chunk():
    reader = string_reader()
    assert reader.feed(HI + NULL) == [QValue.string("hi"), QValue.string(None)]


@pytest.mark.ut
def test_chunk_boundaries_do_not_matter():
    stream = HI + NULL
    expected = [QValue.string("hi"), QValue.string(None)]

    for first in range(len(stream) + 1):
        for second in range(first, len(stream) + 1):
            reader = string_reader()
            values = []
            for chunk in (stream[:first], stream[first:second], stream[second:]):
                values.extend(reader.feed(chunk))
            assert values == expected, (first, second)


@pytest.mark.ut
def test_byte_at_a_time():
    reader = string_reader()
    values = []
    for i in range(len(HI)):
        values.extend(reader.feed(HI[i:i + 1]))

    assert values == [QValue.string("hi")]


@pytest.mark.ut
def test_awaiting_body_state():
    reader = string_reader()

    assert reader.feed(HI[:5]) == []
    assert reader.expected_size == 8
    assert reader.pending == 5

    assert reader.feed(HI[5:]) == [QValue.string("hi")]
    assert reader.expected_size is None


@pytest.mark.ut
def test_empty_chunk():
    reader = string_reader()
    assert reader.feed(b"") == []


@pytest.mark.ut
def test_empty_body():
    config = CodecConfig(message_shape=QType.INVALID)
    reader = FrameReader(Decoder(config=config), config)

    assert reader.feed(bytes(4)) == [QValue.invalid()]


@pytest.mark.ut
def test_oversized_prefix_fails_immediately():
    reader = string_reader()

    with pytest.raises(OversizedPacketError):
        reader.feed(bytes.fromhex("05000000"))

    assert reader.failed
    with pytest.raises(StreamFailedError):
        reader.feed(HI)
    with pytest.raises(StreamFailedError):
        reader.feed_eof()


@pytest.mark.ut
def test_configured_limit():
    reader = string_reader(max_packet_size=7)

    with pytest.raises(OversizedPacketError) as exc_info:
        reader.feed(HI[:4])

    assert exc_info.value.size == 8
    assert exc_info.value.limit == 7


@pytest.mark.ut
def test_eof_between_packets_is_clean():
    reader = string_reader()
    reader.feed(HI)
    reader.feed_eof()


@pytest.mark.ut
def test_eof_inside_packet():
    reader = string_reader()
    assert reader.feed(HI + bytes(3)) == [QValue.string("hi")]

    with pytest.raises(TruncatedStreamError) as exc_info:
        reader.feed_eof()

    assert exc_info.value.pending == 3
    assert reader.failed


@pytest.mark.ut
def test_values_before_a_bad_packet_are_delivered():
    reader = string_reader()
    bad = bytes.fromhex("00000006 00000001 0068")
    values = []

    with pytest.raises(MalformedBodyError):
        for value in reader.iter_feed(HI + bad + NULL):
            values.append(value)

    assert values == [QValue.string("hi")]
    assert reader.failed


@pytest.mark.ut
def test_iter_feed_keeps_unconsumed_packets():
    reader = string_reader()

    values = reader.iter_feed(HI + NULL)
    assert next(values) == QValue.string("hi")
    values.close()

    assert reader.feed(b"") == [QValue.string(None)]


@pytest.mark.ut
def test_progress_callback():
    calls = []
    reader = string_reader(progress=lambda received, total: calls.append((received, total)))

    reader.feed(HI[:6])
    reader.feed(HI[6:])

    assert calls == [(6, 12), (12, 12)]


@pytest.mark.ut
def test_user_type_messages(registry):
    config = CodecConfig(message_shape="BufferInfo")
    reader = FrameReader(Decoder(registry, config), config)
    body = bytes.fromhex("00000007 00000002 0004 00000003 616263")

    (value,) = reader.feed(len(body).to_bytes(4, "big") + body)

    assert value.name == "BufferInfo"
    assert value.to_native() == {"id": 7, "network": 2, "type": 4, "name": b"abc"}
