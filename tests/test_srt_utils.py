import pytest

from subrelay_lib.srt_utils import (
    SRTEntry,
    build_chunks,
    format_srt,
    parse_srt,
    parse_srt_text,
    write_srt,
)

SAMPLE = (
    "\ufeff1\r\n"
    "00:00:01,000 --> 00:00:02,500\r\n"
    "Hello there.\r\n"
    "\r\n"
    "2\r\n"
    "00:00:03,000 --> 00:00:04,000 X1:10 X2:20\r\n"
    "<i>Two</i>\r\n"
    "lines\r\n"
    "\r\n"
    "garbage block without timing\r\n"
    "\r\n"
    "00:00:05.000 --> 00:00:06.000\r\n"
    "No index\r\n"
)


def test_parse_srt_text():
    entries = parse_srt_text(SAMPLE)
    assert entries == [
        SRTEntry(1, "00:00:01,000", "00:00:02,500", "Hello there."),
        SRTEntry(2, "00:00:03,000", "00:00:04,000", "<i>Two</i>\nlines"),
        SRTEntry(3, "00:00:05.000", "00:00:06.000", "No index"),
    ]


def test_parse_empty_text():
    assert parse_srt_text("") == []
    assert parse_srt_text("\n\n  \n") == []


def test_write_then_parse_keeps_entries(tmp_path):
    entries = [
        SRTEntry(1, "00:00:01,000", "00:00:02,000", "Hola"),
        SRTEntry(2, "00:00:03,000", "00:00:04,000", "Dos\nlíneas"),
    ]
    path = tmp_path / "out.srt"
    write_srt(path, entries)
    assert parse_srt(path) == entries
    assert "\r" not in path.read_text(encoding="utf-8")


def test_format_srt_layout():
    text = format_srt([
        SRTEntry(1, "00:00:01,000", "00:00:02,000", "A"),
        SRTEntry(2, "00:00:03,000", "00:00:04,000", "B"),
    ])
    assert text == "1\n00:00:01,000 --> 00:00:02,000\nA\n\n2\n00:00:03,000 --> 00:00:04,000\nB\n"


def test_parse_srt_missing_file(tmp_path):
    with pytest.raises(OSError):
        parse_srt(tmp_path / "missing.srt")


@pytest.mark.parametrize("total,size,expected", [
    (0, 10, []),
    (5, 10, [(0, 4)]),
    (10, 10, [(0, 9)]),
    (23, 10, [(0, 9), (10, 19), (20, 22)]),
    (3, 1, [(0, 0), (1, 1), (2, 2)]),
])
def test_build_chunks(total, size, expected):
    assert build_chunks(total, size) == expected


def test_build_chunks_covers_every_index_once():
    chunks = build_chunks(101, 7)
    covered = [i for start, end in chunks for i in range(start, end + 1)]
    assert covered == list(range(101))
    assert len(chunks) == 15


def test_build_chunks_rejects_non_positive_size():
    with pytest.raises(ValueError):
        build_chunks(10, 0)
