"""
Tests for the global counter and output writing.
"""

import itertools

from dagster_count_reads.components.counter import ReadCounter, count_reads, write_count


def test_count_empty_stream():
    assert count_reads([]) == 0
    assert count_reads(iter(())) == 0


def test_count_consumes_generator():
    assert count_reads(x for x in range(1234)) == 1234


def test_counter_accumulates_beyond_32_bits():
    counter = ReadCounter()
    counter.add(2**31 - 1)
    counter.add(2**31 - 1)
    counter.add(count_reads(itertools.repeat(None, 2)))

    assert counter.total == 2**32
    assert counter.parts == 3


def test_write_count_to_file(tmp_path):
    output = tmp_path / "nested" / "count.txt"

    write_count(30, output)

    assert output.read_text() == "30\n"


def test_write_count_to_stdout(capsys):
    write_count(7)

    assert capsys.readouterr().out == "7\n"
