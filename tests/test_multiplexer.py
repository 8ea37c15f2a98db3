"""OutputMultiplexer unit tests.

Test coverage:
- Prefixing and pass-through for unnamed commands
- Line assembly across chunk boundaries
- Silencing
- Trailing partial line flush
- Line atomicity under concurrent writers
"""

from __future__ import annotations

import io
import re
import threading

import pytest

from cmdmux.runtime.multiplexer import OutputMultiplexer

from helpers import sink_lines


class TestLineAssembly:
    """Test per-channel line assembly."""

    def test_prefixes_complete_lines(self, mux: OutputMultiplexer, sink: io.BytesIO):
        channel = mux.channel("web")
        channel.feed(b"one\ntwo\n")
        assert sink.getvalue() == b"[web] one\n[web] two\n"

    def test_no_prefix_for_empty_name(self, mux: OutputMultiplexer, sink: io.BytesIO):
        channel = mux.channel("")
        channel.feed(b"raw \x1b[31mbytes\x1b[0m\n")
        assert sink.getvalue() == b"raw \x1b[31mbytes\x1b[0m\n"

    def test_partial_lines_wait_for_newline(self, mux: OutputMultiplexer, sink: io.BytesIO):
        channel = mux.channel("a")
        channel.feed(b"hel")
        channel.feed(b"lo")
        assert sink.getvalue() == b""
        assert channel.pending == b"hello"

        channel.feed(b"\nwor")
        assert sink.getvalue() == b"[a] hello\n"
        assert channel.pending == b"wor"

    def test_empty_lines_kept(self, mux: OutputMultiplexer, sink: io.BytesIO):
        channel = mux.channel("a")
        channel.feed(b"\n\nx\n")
        assert sink.getvalue() == b"[a] \n[a] \n[a] x\n"

    def test_close_flushes_trailing_partial(self, mux: OutputMultiplexer, sink: io.BytesIO):
        channel = mux.channel("a")
        channel.feed(b"done\nno newline")
        channel.close()
        assert sink.getvalue() == b"[a] done\n[a] no newline\n"

    def test_close_passes_unprefixed_tail_through(
        self, mux: OutputMultiplexer, sink: io.BytesIO
    ):
        channel = mux.channel("")
        channel.feed(b"done\nno newline")
        channel.close()
        assert sink.getvalue() == b"done\nno newline"

    def test_unprefixed_fragments_reassemble_exactly(
        self, mux: OutputMultiplexer, sink: io.BytesIO
    ):
        channel = mux.channel("")
        for piece in (b"a", b"b", b"c"):
            channel.feed(piece)
        channel.close()
        assert sink.getvalue() == b"abc"

    def test_close_is_idempotent(self, mux: OutputMultiplexer, sink: io.BytesIO):
        channel = mux.channel("a")
        channel.feed(b"x")
        channel.close()
        channel.close()
        assert sink.getvalue() == b"[a] x\n"

    def test_feed_after_close_rejected(self, mux: OutputMultiplexer):
        channel = mux.channel("a")
        channel.close()
        with pytest.raises(ValueError):
            channel.feed(b"late\n")

    def test_long_line_split_at_limit(self, sink: io.BytesIO):
        mux = OutputMultiplexer(sink, max_line_bytes=4)
        channel = mux.channel("a")
        channel.feed(b"abcdefghij")
        assert sink.getvalue() == b"[a] abcd\n[a] efgh\n"
        channel.close()
        assert sink.getvalue() == b"[a] abcd\n[a] efgh\n[a] ij\n"

    def test_long_unprefixed_output_not_split(self, sink: io.BytesIO):
        mux = OutputMultiplexer(sink, max_line_bytes=4)
        channel = mux.channel("")
        channel.feed(b"abcdefghij")
        assert sink.getvalue() == b"abcdefgh"
        assert channel.pending == b"ij"
        channel.close()
        assert sink.getvalue() == b"abcdefghij"

    def test_invalid_limit(self, sink: io.BytesIO):
        with pytest.raises(ValueError):
            OutputMultiplexer(sink, max_line_bytes=0)

    def test_lines_written_counter(self, mux: OutputMultiplexer):
        channel = mux.channel("a")
        channel.feed(b"1\n2\n3")
        assert mux.lines_written == 2


class TestSilence:
    """Test silenced channels."""

    def test_silenced_channel_writes_nothing(self, mux: OutputMultiplexer, sink: io.BytesIO):
        channel = mux.channel("quiet", silence=True)
        channel.feed(b"lots\nof\noutput")
        channel.close()
        assert sink.getvalue() == b""
        assert channel.bytes_received == len(b"lots\nof\noutput")

    def test_silence_does_not_affect_other_channels(
        self, mux: OutputMultiplexer, sink: io.BytesIO
    ):
        loud = mux.channel("loud")
        quiet = mux.channel("quiet", silence=True)
        quiet.feed(b"hidden\n")
        loud.feed(b"shown\n")
        assert sink.getvalue() == b"[loud] shown\n"


class TestAtomicity:
    """Lines from different channels never mix."""

    def test_concurrent_writers_do_not_interleave(
        self, mux: OutputMultiplexer, sink: io.BytesIO
    ):
        writers = 8
        lines_per_writer = 300

        def write(index: int) -> None:
            channel = mux.channel(f"w{index}")
            for i in range(lines_per_writer):
                line = f"w{index}-{i}\n".encode()
                # Odd-sized fragments so lines straddle chunks
                for start in range(0, len(line), 3):
                    channel.feed(line[start : start + 3])
            channel.close()

        threads = [threading.Thread(target=write, args=(n,)) for n in range(writers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        lines = sink_lines(sink)
        assert len(lines) == writers * lines_per_writer

        pattern = re.compile(r"^\[w(\d+)\] w(\d+)-(\d+)$")
        seen: dict[int, list[int]] = {}
        for line in lines:
            match = pattern.match(line)
            assert match, f"torn line: {line!r}"
            assert match.group(1) == match.group(2)
            seen.setdefault(int(match.group(1)), []).append(int(match.group(3)))

        # Per-writer order is preserved
        for numbers in seen.values():
            assert numbers == list(range(lines_per_writer))
