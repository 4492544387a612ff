from datetime import timedelta

from livescribe.app.output_parser import OutputParser, parse_timestamp


def test_timestamped_line():
    """A bracketed line yields text with parsed bounds."""
    segments = OutputParser().parse("[00:00:01.500 --> 00:00:03.250] Hello world")

    assert len(segments) == 1
    assert segments[0].text == "Hello world"
    assert segments[0].start_ms == 1500
    assert segments[0].end_ms == 3250


def test_blank_audio_marker_is_dropped():
    assert OutputParser().parse("[00:00:00.000 --> 00:00:01.000] [BLANK_AUDIO]") == []


def test_empty_timestamped_text_is_dropped():
    assert OutputParser().parse("[00:00:00.000 --> 00:00:01.000]   ") == []


def test_noise_line_is_dropped():
    assert OutputParser().parse("whisper_init: loading model") == []


def test_noise_matching_is_case_insensitive():
    parser = OutputParser()
    assert parser.parse("System_Info: n_threads = 4") == []
    assert parser.parse("Loading Model from disk") == []
    assert parser.parse("[BLANK_AUDIO]") == []


def test_plain_text_line():
    segments = OutputParser().parse("Hello")

    assert len(segments) == 1
    assert segments[0].text == "Hello"
    assert segments[0].start == timedelta(0)
    assert segments[0].end == timedelta(0)


def test_plain_text_heuristics_reject_log_like_lines():
    parser = OutputParser()
    assert parser.parse("[Music]") == []
    assert parser.parse("# comment") == []
    assert parser.parse("=====") == []
    assert parser.parse("key: value") == []
    assert parser.parse("a") == []


def test_malformed_timestamp_degrades_to_zero():
    segments = OutputParser().parse("[bad --> 00:00:01.000] text")

    assert len(segments) == 1
    assert segments[0].text == "text"
    assert segments[0].start == timedelta(0)
    assert segments[0].end_ms == 1000


def test_mixed_output_keeps_order():
    output = "\n".join([
        "whisper_init_from_file_with_params_no_state: loading model from 'ggml-base.en.bin'",
        "",
        "[00:00:00.000 --> 00:00:02.000]   First sentence.",
        "main: processing 'rec.wav' (48000 samples, 3.0 sec)",
        "[00:00:02.000 --> 00:00:03.000]   Second sentence.",
        "   ",
        "whisper_print_timings:     total time =   512.00 ms",
    ])

    texts = [s.text for s in OutputParser().parse(output)]
    assert texts == ["First sentence.", "Second sentence."]


def test_segments_carry_creation_time():
    segment = OutputParser().parse("Hello there")[0]
    assert segment.created_at is not None


def test_extra_noise_patterns_extend_catalogue():
    parser = OutputParser(extra_patterns=[r"^thank you for watching"])

    assert parser.parse("Thank you for watching") == []
    assert parser.parse("whisper_init: loading") == []
    assert [s.text for s in parser.parse("Thanks a lot")] == ["Thanks a lot"]


def test_noise_patterns_can_be_replaced():
    parser = OutputParser(noise_patterns=[])
    # With no catalogue the plain text heuristic still rejects the colon
    assert parser.parse("whisper_init: loading model") == []
    assert [s.text for s in parser.parse("whisper_ready")] == ["whisper_ready"]


def test_parse_timestamp():
    assert parse_timestamp("00:00:01.500") == timedelta(seconds=1, milliseconds=500)
    assert parse_timestamp("01:02:03.004") == timedelta(hours=1, minutes=2, seconds=3, milliseconds=4)
    assert parse_timestamp("00:00:07") == timedelta(seconds=7)


def test_parse_timestamp_is_lenient():
    assert parse_timestamp("bad") == timedelta(0)
    assert parse_timestamp("00:xx:01.000") == timedelta(0)
    assert parse_timestamp("00:00:01.abc") == timedelta(0)
    assert parse_timestamp("") == timedelta(0)
