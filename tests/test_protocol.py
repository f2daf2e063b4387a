"""Tests for the wire codec, data models and colour parsing."""

import ipaddress

import pytest

from glow_protocol import (
    RT_CHUNK_SIZE,
    DeviceIdentifier,
    DeviceInfo,
    LedLayout,
    LedProfile,
    ProtocolError,
    RtProtocolVersion,
    TimerSettings,
    ValidationError,
    decode_discovery_response,
    decode_token,
    describe_response_code,
    encode_rt_frame,
    flatten_rgb,
    is_success_code,
    parse_color,
    to_movie,
)

from conftest import make_gestalt

TOKEN = bytes(range(8))


class TestDiscoveryDecoding:

    def test_valid_reply(self):
        data = bytes([0x2D, 0x01, 0xA8, 0xC0]) + b"OK" + b"Twinkly_ABC123" + b"\x00"
        response = decode_discovery_response(data)
        assert response.ip_address == ipaddress.IPv4Address("192.168.1.45")
        assert response.device_id == "Twinkly_ABC123"

    def test_id_stops_at_first_zero(self):
        data = bytes([50, 1, 168, 192]) + b"OK" + b"AB12" + b"\x00\x00\x00"
        assert len(data) == 13
        response = decode_discovery_response(data)
        assert response.ip_address == ipaddress.IPv4Address("192.168.1.50")
        assert response.device_id == "AB12"

    @pytest.mark.parametrize("data", [
        b"",
        b"\x01\x02\x03\x04OK\x00",                    # too short
        b"\x01\x02\x03\x04NOabc\x00",                 # wrong marker
        b"\x01\x02\x03\x04OKabc",                     # no terminator
        b"\x01\x02\x03\x04OK\xff\xfe\x00",            # not ascii
    ])
    def test_invalid_replies(self, data):
        assert decode_discovery_response(data) is None


class TestRealTimeEncoding:

    def test_v1_layout(self):
        frame = flatten_rgb([(1, 2, 3), (4, 5, 6)])
        packets = encode_rt_frame(RtProtocolVersion.V1, TOKEN, frame, 2)
        assert packets == [b"\x01" + TOKEN + b"\x02" + frame]

    def test_v1_rejects_more_than_255_leds(self):
        with pytest.raises(ValidationError):
            encode_rt_frame(1, TOKEN, bytes(256 * 3), 256)

    def test_v2_single_datagram(self):
        frame = bytes(3000)
        packets = encode_rt_frame(2, TOKEN, frame, 1000)
        assert len(packets) == 1
        assert packets[0][:10] == b"\x02" + TOKEN + b"\x00"
        assert packets[0][10:] == frame

    def test_v3_chunking(self):
        frame = bytes(i % 251 for i in range(1000 * 3))
        packets = encode_rt_frame(3, TOKEN, frame, 1000)
        assert len(packets) == 4
        for index, packet in enumerate(packets):
            assert packet[0] == 0x03
            assert packet[1:9] == TOKEN
            assert packet[9:11] == b"\x00\x00"
            assert packet[11] == index
        assert [len(p) - 12 for p in packets] == [900, 900, 900, 300]
        assert b"".join(p[12:] for p in packets) == frame

    def test_v3_small_frame(self):
        frame = bytes(30)
        packets = encode_rt_frame(3, TOKEN, frame, 10)
        assert len(packets) == 1
        assert len(packets[0]) == 12 + 30

    def test_v3_exact_multiple(self):
        packets = encode_rt_frame(3, TOKEN, bytes(RT_CHUNK_SIZE * 2), 600)
        assert [len(p) - 12 for p in packets] == [RT_CHUNK_SIZE, RT_CHUNK_SIZE]

    def test_v3_empty_frame(self):
        assert encode_rt_frame(3, TOKEN, b"", 0) == []

    def test_v3_too_many_chunks(self):
        with pytest.raises(ValidationError):
            encode_rt_frame(3, TOKEN, bytes(RT_CHUNK_SIZE * 256 + 1), 0)

    def test_unknown_version(self):
        with pytest.raises(ValueError):
            encode_rt_frame(4, TOKEN, bytes(3), 1)


class TestFlattenAndMovie:

    def test_flatten(self):
        assert flatten_rgb([(255, 0, 0), (0, 128, 7)]) == bytes([255, 0, 0, 0, 128, 7])

    def test_flatten_out_of_range(self):
        with pytest.raises(ValidationError):
            flatten_rgb([(256, 0, 0)])

    def test_movie_rgb(self):
        assert to_movie([[(1, 2, 3)], [(4, 5, 6)]], LedProfile.RGB) == bytes([1, 2, 3, 4, 5, 6])

    def test_movie_rgbw_splits_white(self):
        assert to_movie([[(200, 150, 100)]], LedProfile.RGBW) == bytes([100, 50, 0, 100])


class TestResponseCodes:

    def test_only_1000_is_success(self):
        assert is_success_code(1000)
        assert not is_success_code(1107)
        assert not is_success_code(1108)
        assert not is_success_code(None)

    def test_descriptions(self):
        assert describe_response_code(1104) == "Error - malformed JSON on input"
        assert describe_response_code(4242) == "Unknown(4242)"


class TestModels:

    def test_device_identifier_ignores_token(self):
        ip = ipaddress.IPv4Address("192.168.1.45")
        a = DeviceIdentifier(ip, "Twinkly_1", "aa:bb:cc:dd:ee:ff", "Tree", 250, token="one")
        b = DeviceIdentifier(ip, "Twinkly_1", "aa:bb:cc:dd:ee:ff", "Tree", 250, token="two")
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1
        assert 'token' not in a.to_dict()

    def test_device_info_from_gestalt(self):
        info = DeviceInfo.from_json(make_gestalt(number_of_led=250, led_profile='RGBW'))
        assert info.number_of_led == 250
        assert info.led_profile == LedProfile.RGBW
        assert info.uptime_ms == 60000

    def test_device_info_volatile_fields_not_compared(self):
        first = DeviceInfo.from_json(make_gestalt(uptime='1000'))
        second = DeviceInfo.from_json(make_gestalt(uptime='2000', measured_frame_rate=11.0))
        assert first == second

    def test_device_info_requires_led_count(self):
        gestalt = make_gestalt()
        del gestalt['number_of_led']
        with pytest.raises(ProtocolError):
            DeviceInfo.from_json(gestalt)

    def test_device_info_unknown_profile(self):
        with pytest.raises(ProtocolError):
            DeviceInfo.from_json(make_gestalt(led_profile='RGBWW'))

    def test_layout(self):
        layout = LedLayout.from_json({
            'source': '2d', 'synthesized': True, 'uuid': 'u',
            'coordinates': [{'x': 0.5, 'y': -1}, {'x': 0, 'y': 0, 'z': 1}],
        })
        assert layout.coordinates == [(0.5, -1.0, 0.0), (0.0, 0.0, 1.0)]

    def test_layout_malformed(self):
        with pytest.raises(ProtocolError):
            LedLayout.from_json({'coordinates': [{'x': 1}]})

    @pytest.mark.parametrize("seconds,expected", [
        (0, "00:00:00"),
        (37230, "10:20:30"),
        (-1, "disabled"),
    ])
    def test_format_time(self, seconds, expected):
        assert TimerSettings.format_time(seconds) == expected


class TestToken:

    def test_decode(self):
        assert decode_token("AAECAwQFBgc=") == TOKEN

    def test_decode_invalid(self):
        with pytest.raises(ProtocolError):
            decode_token("not base64!")


class TestParseColor:

    @pytest.mark.parametrize("text,expected", [
        ("red", (255, 0, 0)),
        ("  Mint ", (189, 252, 201)),
        ("#00ff80", (0, 255, 128)),
        ("FFAA00", (255, 170, 0)),
        ("rgb(1, 2, 3)", (1, 2, 3)),
    ])
    def test_valid(self, text, expected):
        assert parse_color(text) == expected

    @pytest.mark.parametrize("text", ["chartreuse", "#12345", "rgb(256, 0, 0)", ""])
    def test_invalid(self, text):
        with pytest.raises(ValidationError):
            parse_color(text)
