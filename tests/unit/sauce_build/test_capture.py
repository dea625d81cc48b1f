"""Tests for console pass-through capture."""

from __future__ import annotations

import io

import pytest

from sauce_build.capture import LogCapture


pytestmark = pytest.mark.unit_build


CHUNKS = [
    b"Started by user admin\n",
    b"SauceOnDemandSessionID=abc job-name=",
    b"login test\nbad byte \xff here\n",
    "café ok\n".encode("utf-8"),
    b"trailing without newline",
]


def test_bytes_pass_through_unchanged_and_in_order() -> None:
    sink = io.BytesIO()
    capture = LogCapture(sink, "utf-8", build_id="job #1")
    for chunk in CHUNKS:
        capture.write(chunk)
    assert sink.getvalue() == b"".join(CHUNKS)


def test_lines_are_decoded_and_bad_lines_excluded() -> None:
    capture = LogCapture(io.BytesIO(), "utf-8")
    for chunk in CHUNKS:
        capture.write(chunk)
    lines = capture.freeze()
    assert lines == (
        "Started by user admin",
        "SauceOnDemandSessionID=abc job-name=login test",
        "café ok",
        "trailing without newline",
    )
    assert len(capture.decode_errors) == 1
    assert capture.decode_errors[0].error_type == "DecodingError"


def test_frozen_capture_keeps_forwarding() -> None:
    sink = io.BytesIO()
    capture = LogCapture(sink, "utf-8")
    capture.write(b"one\n")
    capture.freeze()
    capture.write(b"two\n")
    assert capture.lines == ("one",)
    assert sink.getvalue() == b"one\ntwo\n"


def test_no_charset_means_nothing_recorded() -> None:
    sink = io.BytesIO()
    capture = LogCapture(sink, None)
    capture.write(b"line\n")
    assert capture.freeze() == ()
    assert sink.getvalue() == b"line\n"


def test_crlf_lines_are_stripped() -> None:
    capture = LogCapture(io.BytesIO(), "latin-1")
    capture.write(b"windows line\r\n")
    assert capture.lines == ("windows line",)


def test_close_records_tail_and_closes_sink() -> None:
    sink = io.BytesIO()
    capture = LogCapture(sink, "utf-8")
    capture.write(b"partial")
    capture.close()
    assert capture.frozen
    assert capture.lines == ("partial",)
    assert sink.closed
